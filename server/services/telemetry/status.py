"""Final execution status classification.

A run whose error message mentions "canceled" is reported as canceled no
matter what its own status field says. Everything else is decided by a
pluggable determiner, whose answer is taken as ground truth.
"""

from typing import Callable, Optional

from models.execution import Run
from .models import ExecutionStatus, StatusClassification

CANCELED_MARKER = "canceled"

# Engine spelling of a failed run status
FAILED_STATUS_ALIAS = "error"

StatusDeterminer = Callable[[Run], ExecutionStatus]


def is_canceled(run: Run) -> bool:
    """True when the run's error message carries the cancellation marker."""
    error = run.error
    return error is not None and CANCELED_MARKER in (error.message or "")


def determine_final_execution_status(run: Run) -> ExecutionStatus:
    """Default status determiner.

    A waiting run is waiting whatever else it reports. Otherwise the run's
    own status field decides crashed and canceled; a failed or errored
    status, or an attached error, means failed. Anything else succeeded.
    """
    if run.wait_till:
        return ExecutionStatus.WAITING

    status = ExecutionStatus.parse(run.status)
    if status is ExecutionStatus.CRASHED:
        return ExecutionStatus.CRASHED
    if status is ExecutionStatus.CANCELED:
        return ExecutionStatus.CANCELED
    if status is ExecutionStatus.FAILED or run.status == FAILED_STATUS_ALIAS or run.error is not None:
        return ExecutionStatus.FAILED
    return ExecutionStatus.SUCCESS


def classify_execution_status(
    run: Optional[Run],
    determine: StatusDeterminer = determine_final_execution_status,
) -> StatusClassification:
    """Classify a run without mutating it.

    Args:
        run: Raw execution result, or None when the engine supplied none
        determine: Status determiner used when no override applies

    Returns:
        StatusClassification with the final status and the run's effective
        status field
    """
    if run is None:
        return StatusClassification(
            status=ExecutionStatus.UNKNOWN,
            run_status=ExecutionStatus.UNKNOWN,
        )

    if is_canceled(run):
        return StatusClassification(
            status=ExecutionStatus.CANCELED,
            run_status=ExecutionStatus.CANCELED,
        )

    return StatusClassification(
        status=determine(run),
        run_status=ExecutionStatus.parse(run.status),
    )
