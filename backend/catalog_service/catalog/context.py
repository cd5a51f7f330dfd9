# backend/catalog_service/catalog/context.py

import threading
import time
from typing import Optional

from .errors import CancelledError


class OperationContext:
    """Deadline and cancellation signal supplied by the caller of a use case.

    Use cases call ``check`` before every step that precedes a commit. Once the
    record store has committed, the remaining index write runs to completion
    even if the context has been cancelled in the meantime.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.deadline = deadline
        self.cancel_event = cancel_event or threading.Event()

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "OperationContext":
        if not seconds or seconds <= 0:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self, stage: str) -> None:
        if self.cancelled:
            raise CancelledError(detail=stage)
