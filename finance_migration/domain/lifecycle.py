"""
Import batch lifecycle.

    pending -> validating -> preview -> importing -> completed | failed
    completed -> reverted

Preview is accepted from pending, validating and preview so a caller can
dry-run before (or instead of) validating.  It is refused once a commit has
started, so a finished batch can never be re-committed.  Delete is the only
operation on failed and reverted batches.
"""

from __future__ import annotations

from finance_migration.domain.types import BatchStatus, ImportBatch
from finance_migration.domain.workflow import Guard, Transition, Workflow
from finance_migration.exceptions import BatchStateError
from finance_migration.logging_config import get_logger

logger = get_logger("domain.lifecycle")

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_BLOCKING_ERRORS = Guard(
    name="no_blocking_errors",
    description="Validation produced zero error-severity issues",
)

HAS_ERRORS = Guard(
    name="has_blocking_errors",
    description="Validation produced at least one error-severity issue",
)

ALL_ROWS_FAILED = Guard(
    name="all_rows_failed",
    description="At least one row failed and no row was imported",
)

# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

UPLOAD = "upload"
VALIDATE = "validate"
PREVIEW = "preview"
COMMIT = "commit"
FINISH = "finish"
REVERT = "revert"
DELETE = "delete"

_P = BatchStatus.PENDING.value
_V = BatchStatus.VALIDATING.value
_PV = BatchStatus.PREVIEW.value
_I = BatchStatus.IMPORTING.value
_C = BatchStatus.COMPLETED.value
_F = BatchStatus.FAILED.value
_R = BatchStatus.REVERTED.value

BATCH_WORKFLOW = Workflow(
    name="import_batch",
    description="Lifecycle of one import batch from upload to revert",
    initial_state=_P,
    states=(_P, _V, _PV, _I, _C, _F, _R),
    transitions=(
        Transition(_P, _V, action=UPLOAD),
        Transition(_P, _PV, action=VALIDATE, guard=NO_BLOCKING_ERRORS),
        Transition(_P, _V, action=VALIDATE, guard=HAS_ERRORS),
        Transition(_V, _PV, action=VALIDATE, guard=NO_BLOCKING_ERRORS),
        Transition(_V, _V, action=VALIDATE, guard=HAS_ERRORS),
        Transition(_P, _PV, action=PREVIEW),
        Transition(_V, _PV, action=PREVIEW),
        Transition(_PV, _PV, action=PREVIEW),
        Transition(_PV, _I, action=COMMIT),
        Transition(_I, _C, action=FINISH),
        Transition(_I, _F, action=FINISH, guard=ALL_ROWS_FAILED),
        Transition(_C, _R, action=REVERT),
        Transition(_C, _C, action=DELETE),
        Transition(_F, _F, action=DELETE),
        Transition(_R, _R, action=DELETE),
    ),
    terminal_states=(_F, _R),
)

logger.debug(
    "batch_workflow_registered",
    extra={
        "workflow": BATCH_WORKFLOW.name,
        "states": BATCH_WORKFLOW.states,
        "transitions": len(BATCH_WORKFLOW.transitions),
    },
)


def require_status(batch: ImportBatch, action: str) -> None:
    """Raise BatchStateError unless ``action`` may fire from the batch's status.

    Raises:
        BatchStateError: carrying the actual status and the allowed ones.
    """
    if not BATCH_WORKFLOW.allows(action, batch.status.value):
        raise BatchStateError(
            batch.batch_id,
            actual=batch.status.value,
            expected=BATCH_WORKFLOW.sources_for(action),
            operation=action,
        )


def next_status(
    batch: ImportBatch,
    action: str,
    satisfied: tuple[Guard, ...] = (),
) -> BatchStatus:
    """Target status of ``action`` from the batch's current status.

    A guarded transition fires when its guard is in ``satisfied``; otherwise
    the unguarded transition applies.

    Raises:
        BatchStateError: the action cannot fire from the current status, or
            no transition matches the satisfied guards.
    """
    require_status(batch, action)
    fallback: str | None = None
    for t in BATCH_WORKFLOW.transitions:
        if t.action != action or t.from_state != batch.status.value:
            continue
        if t.guard is None:
            fallback = fallback or t.to_state
        elif t.guard in satisfied:
            return BatchStatus(t.to_state)
    if fallback is None:
        raise BatchStateError(
            batch.batch_id,
            actual=batch.status.value,
            expected=BATCH_WORKFLOW.sources_for(action),
            operation=action,
        )
    return BatchStatus(fallback)
