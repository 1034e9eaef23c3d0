# volunteer_board/exceptions/board.py
from typing import List, Optional

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Referenced task or volunteer does not exist"""
    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{collection[:-1].capitalize()} {record_id} not found"
        )


class InvalidTransitionError(HTTPException):
    """Operation is not allowed from the task's current status"""
    def __init__(self, task_id: str, operation: str, current_status: str, reason: Optional[str] = None):
        self.task_id = task_id
        self.operation = operation
        self.current_status = current_status
        message = reason or f"Cannot {operation} a task that is {current_status}"
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": message,
                "task_id": task_id,
                "operation": operation,
                "current_status": current_status,
                "hint": "Refresh the task; someone else may have changed it"
            }
        )


class PartialCompletionFailure(HTTPException):
    """
    Some contributors were credited before a later write failed.

    Never retried automatically: running the whole completion again would
    credit the volunteers in ``credited`` twice. Recover by completing the
    task again for ``uncredited`` only, or by finalizing it when
    ``uncredited`` is empty.
    """
    def __init__(
        self,
        task_id: str,
        credited: List[str],
        uncredited: List[str],
        failed_volunteer: Optional[str] = None,
        orphaned_completion_id: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.task_id = task_id
        self.credited = list(credited)
        self.uncredited = list(uncredited)
        self.failed_volunteer = failed_volunteer
        self.orphaned_completion_id = orphaned_completion_id
        self.cause = cause

        if failed_volunteer is None:
            message = (
                "All volunteers were credited but the task could not be marked completed; "
                f"finalize it with POST /api/v1/tasks/{task_id}/finalize"
            )
        else:
            message = f"Crediting stopped at volunteer {failed_volunteer}"

        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": message,
                "task_id": task_id,
                "credited": self.credited,
                "uncredited": self.uncredited,
                "failed_volunteer": failed_volunteer,
                "orphaned_completion_id": orphaned_completion_id,
                "error": str(cause) if cause else None
            }
        )


class NotificationFailure(Exception):
    """Announcement could not be delivered; logged, never propagated to callers"""
    def __init__(self, kind: str, task_id: str, reason: str):
        self.kind = kind
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Failed to announce {kind} for task {task_id}: {reason}")


class ChangeFeedError(Exception):
    """A change feed subscription was dropped"""
    pass


class ChangeFeedOverflow(ChangeFeedError):
    """Subscriber fell too far behind and lost its place in the feed"""
    pass
