"""
Billing Workflows.

State machine for invoices.  Money movement drives every transition except
cancellation and the lazy overdue reclassification.
"""

from school_kernel.domain.workflow import Guard, Transition, Workflow
from school_kernel.logging_config import get_logger

logger = get_logger("modules.billing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BALANCE_SETTLED = Guard(
    name="balance_settled",
    description="Invoice balance is zero or below",
)

NO_MONEY_APPLIED = Guard(
    name="no_money_applied",
    description="Invoice amount paid is zero",
)

PAST_DUE = Guard(
    name="past_due",
    description="Invoice due date is before today",
)

logger.info(
    "billing_workflow_guards_defined",
    extra={
        "guards": [
            BALANCE_SETTLED.name,
            NO_MONEY_APPLIED.name,
            PAST_DUE.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Invoice lifecycle",
    initial_state="unpaid",
    states=(
        "unpaid",
        "partially_paid",
        "paid",
        "overdue",
        "cancelled",
    ),
    transitions=(
        Transition("unpaid", "partially_paid", action="apply_payment"),
        Transition("unpaid", "paid", action="apply_payment", guard=BALANCE_SETTLED),
        Transition("partially_paid", "paid", action="apply_payment", guard=BALANCE_SETTLED),
        Transition("partially_paid", "partially_paid", action="apply_payment"),
        Transition("overdue", "paid", action="apply_payment", guard=BALANCE_SETTLED),
        Transition("overdue", "overdue", action="apply_payment"),
        Transition("paid", "partially_paid", action="refund"),
        Transition("paid", "unpaid", action="refund"),
        Transition("partially_paid", "unpaid", action="refund"),
        Transition("partially_paid", "partially_paid", action="refund"),
        Transition("unpaid", "unpaid", action="refund"),
        Transition("overdue", "overdue", action="refund"),
        Transition("unpaid", "overdue", action="mark_overdue", guard=PAST_DUE),
        Transition("partially_paid", "overdue", action="mark_overdue", guard=PAST_DUE),
        Transition("unpaid", "cancelled", action="cancel", guard=NO_MONEY_APPLIED),
        Transition("overdue", "cancelled", action="cancel", guard=NO_MONEY_APPLIED),
    ),
    terminal_states=("cancelled",),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)
