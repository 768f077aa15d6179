"""
Kernel boundary and invariants contract.

1. school_kernel/** may NOT import school_modules or school_config.
2. school_modules/** may NOT import school_config; configuration reaches
   modules only through school_config.bridges.
3. Module models, workflows and config schemas are pure: no sqlalchemy.
4. Only the clock reads the wall clock.
5. The invariants declaration is complete and non-empty.
6. Structured log extras never shadow LogRecord attributes.

These tests read source code via AST and cannot break anything.
"""

import ast
import logging
from pathlib import Path

from school_kernel.invariants import (
    ALL_LEDGER_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    LedgerInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in *path*."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...], files=None) -> list[str]:
    found = []
    for path in files if files is not None else _python_files(package):
        for lineno, module in _extract_imports(path):
            if _matches_any(module, forbidden):
                found.append(f"{path.relative_to(ROOT)}:{lineno} imports {module}")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:

    def test_kernel_files_found(self):
        assert len(_python_files("school_kernel")) > 10

    def test_kernel_does_not_import_modules_or_config(self):
        violations = _violations("school_kernel", FORBIDDEN_KERNEL_IMPORTS)
        assert violations == [], "\n".join(violations)


class TestModulesUseBridges:

    def test_modules_do_not_import_config_package(self):
        violations = _violations("school_modules", ("school_config",))
        assert violations == [], "\n".join(violations)


class TestPureModuleLayers:

    PURE_FILES = ("models.py", "workflows.py", "config.py")

    def test_no_sqlalchemy_in_pure_files(self):
        files = [
            p for p in _python_files("school_modules") if p.name in self.PURE_FILES
        ]
        assert files
        violations = _violations("school_modules", ("sqlalchemy",), files=files)
        assert violations == [], "\n".join(violations)


class TestClockDiscipline:

    WALL_CLOCK_CALLS = {("datetime", "now"), ("datetime", "utcnow"), ("date", "today")}

    def test_only_clock_reads_wall_time(self):
        offenders = []
        for package in ("school_kernel", "school_modules", "school_config"):
            for path in _python_files(package):
                if path.name == "clock.py":
                    continue
                tree = ast.parse(path.read_text(), filename=str(path))
                for node in ast.walk(tree):
                    if (
                        isinstance(node, ast.Attribute)
                        and isinstance(node.value, ast.Name)
                        and (node.value.id, node.attr) in self.WALL_CLOCK_CALLS
                    ):
                        offenders.append(f"{path.relative_to(ROOT)}:{node.lineno}")
        assert offenders == [], "\n".join(offenders)


class TestLogExtras:

    RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
        "message", "asctime", "taskName",
    }

    def test_extra_keys_not_reserved(self):
        offenders = []
        for package in ("school_kernel", "school_modules", "school_config"):
            for path in _python_files(package):
                tree = ast.parse(path.read_text(), filename=str(path))
                for node in ast.walk(tree):
                    if not isinstance(node, ast.Call):
                        continue
                    for kw in node.keywords:
                        if kw.arg != "extra" or not isinstance(kw.value, ast.Dict):
                            continue
                        for key in kw.value.keys:
                            if isinstance(key, ast.Constant) and key.value in self.RESERVED:
                                offenders.append(
                                    f"{path.relative_to(ROOT)}:{key.lineno} {key.value}"
                                )
        assert offenders == [], "\n".join(offenders)


class TestInvariantsDeclaration:

    def test_invariants_declared(self):
        assert len(ALL_LEDGER_INVARIANTS) == len(LedgerInvariant) >= 8

    def test_every_invariant_documented(self):
        source = (ROOT / "school_kernel" / "invariants.py").read_text()
        tree = ast.parse(source)
        enum_body = next(
            n for n in tree.body
            if isinstance(n, ast.ClassDef) and n.name == "LedgerInvariant"
        ).body
        for i, node in enumerate(enum_body):
            if isinstance(node, ast.Assign):
                following = enum_body[i + 1] if i + 1 < len(enum_body) else None
                assert isinstance(following, ast.Expr), ast.unparse(node)
                assert isinstance(following.value, ast.Constant)
