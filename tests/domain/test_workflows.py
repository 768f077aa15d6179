"""
Workflow Transition Tests.

All workflows must have:
1. An initial state that exists in states
2. All transition from/to states exist in states
3. No orphan states (unreachable states)
4. Terminal states with no outgoing transitions
"""

import pytest

from school_kernel.domain.workflow import Transition, Workflow
from school_modules.billing.workflows import INVOICE_WORKFLOW
from school_modules.membership.workflows import MEMBERSHIP_WORKFLOW

ALL_WORKFLOWS = [
    ("Membership", MEMBERSHIP_WORKFLOW),
    ("Invoice", INVOICE_WORKFLOW),
]


class TestWorkflowStructure:

    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_initial_state_exists(self, name, workflow):
        assert workflow.initial_state in workflow.states

    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_no_orphan_states(self, name, workflow):
        reachable = {workflow.initial_state}
        changed = True
        while changed:
            changed = False
            for transition in workflow.transitions:
                if transition.from_state in reachable and transition.to_state not in reachable:
                    reachable.add(transition.to_state)
                    changed = True

        assert not set(workflow.states) - reachable

    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_terminal_states_have_no_exits(self, name, workflow):
        states_with_outgoing = {t.from_state for t in workflow.transitions}
        assert workflow.terminal_states
        for state in workflow.terminal_states:
            assert state not in states_with_outgoing


class TestMembershipWorkflow:

    @pytest.mark.parametrize(
        "action,target",
        [
            ("transfer", "transferred"),
            ("complete", "completed"),
            ("withdraw", "withdrawn"),
            ("suspend", "suspended"),
        ],
    )
    def test_active_closes(self, action, target):
        transition = MEMBERSHIP_WORKFLOW.find_transition("active", action)
        assert transition is not None
        assert transition.to_state == target

    @pytest.mark.parametrize("state", ["completed", "transferred", "withdrawn", "suspended"])
    def test_closed_states_are_terminal(self, state):
        assert MEMBERSHIP_WORKFLOW.is_terminal(state)
        assert MEMBERSHIP_WORKFLOW.find_transition(state, "withdraw") is None


class TestInvoiceWorkflow:

    @pytest.mark.parametrize("state", ["paid", "cancelled"])
    def test_closed_invoices_accept_no_payment(self, state):
        assert INVOICE_WORKFLOW.find_transition(state, "apply_payment") is None

    def test_paid_invoice_accepts_refund(self):
        assert INVOICE_WORKFLOW.find_transition("paid", "refund") is not None

    @pytest.mark.parametrize("state", ["unpaid", "overdue"])
    def test_cancel_allowed_without_money(self, state):
        assert INVOICE_WORKFLOW.find_transition(state, "cancel") is not None

    @pytest.mark.parametrize("state", ["partially_paid", "paid", "cancelled"])
    def test_cancel_refused(self, state):
        assert INVOICE_WORKFLOW.find_transition(state, "cancel") is None


class TestWorkflowValidation:

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_terminal_with_exit_rejected(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("a", "b", action="go"), Transition("b", "a", action="back")),
                terminal_states=("b",),
            )
