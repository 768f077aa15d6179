"""
Membership Workflows.

State machine for enrollment records.  ``active`` is the only source state;
the four closing states are terminal for the row.  A transfer closes the
source and spawns a new ``active`` row on the target group.
"""

from school_kernel.domain.workflow import Guard, Transition, Workflow
from school_kernel.logging_config import get_logger

logger = get_logger("modules.membership.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NOT_ALREADY_IN_TARGET = Guard(
    name="not_already_in_target",
    description="Subject has no active membership in the target group and period",
)

TARGET_HAS_CAPACITY = Guard(
    name="target_has_capacity",
    description="Target group is below capacity (when capacity is enforced)",
)

logger.info(
    "membership_workflow_guards_defined",
    extra={
        "guards": [
            NOT_ALREADY_IN_TARGET.name,
            TARGET_HAS_CAPACITY.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Membership Workflow
# -----------------------------------------------------------------------------

MEMBERSHIP_WORKFLOW = Workflow(
    name="membership",
    description="Enrollment lifecycle of one subject in one group",
    initial_state="active",
    states=(
        "active",
        "completed",
        "transferred",
        "withdrawn",
        "suspended",
    ),
    transitions=(
        Transition("active", "completed", action="complete"),
        Transition("active", "transferred", action="transfer", guard=NOT_ALREADY_IN_TARGET),
        Transition("active", "withdrawn", action="withdraw"),
        Transition("active", "suspended", action="suspend"),
    ),
    terminal_states=("completed", "transferred", "withdrawn", "suspended"),
)

logger.info(
    "membership_workflow_registered",
    extra={
        "workflow_name": MEMBERSHIP_WORKFLOW.name,
        "state_count": len(MEMBERSHIP_WORKFLOW.states),
        "transition_count": len(MEMBERSHIP_WORKFLOW.transitions),
        "initial_state": MEMBERSHIP_WORKFLOW.initial_state,
    },
)
