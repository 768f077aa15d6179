"""
Roster Module.

Subjects (the people records are kept about) and the groups they join.
"""

from school_modules.roster.models import Group, Subject, SubjectStatus, display_name

__all__ = [
    "Group",
    "Subject",
    "SubjectStatus",
    "display_name",
]
