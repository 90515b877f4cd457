from dataclasses import dataclass, field
import threading
import time
from typing import TYPE_CHECKING

from loguru import logger

from gitopssets.errors import ReconcileCancelled

if TYPE_CHECKING:
    from loguru import Logger


@dataclass
class ReconcileContext:
    """
    Carries the deadline, the cancellation signal and the logger of a single reconciliation pass. Every blocking call
    made on behalf of the pass (HTTP requests, archive downloads, object store calls) checks the context first and
    derives its timeout from it.
    """

    deadline: float | None = None
    """ Deadline as a value of `time.monotonic()`, or `None` for no deadline. """

    cancelled: threading.Event = field(default_factory=threading.Event)
    """ Set to abort the pass at the next blocking call. """

    log: "Logger" = field(default=logger, repr=False)
    """ The logger to use for messages about the pass, usually bound to the GitOpsSet being reconciled. """

    @staticmethod
    def with_timeout(seconds: float | None, log: "Logger | None" = None) -> "ReconcileContext":
        deadline = None if seconds is None else time.monotonic() + seconds
        return ReconcileContext(deadline=deadline, log=log or logger)

    def cancel(self) -> None:
        self.cancelled.set()

    def check(self) -> None:
        """
        Raises:
            ReconcileCancelled: If the pass was cancelled or the deadline has expired.
        """

        if self.cancelled.is_set():
            raise ReconcileCancelled("reconciliation was cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ReconcileCancelled("reconciliation deadline exceeded")

    def timeout(self, default: float) -> float:
        """
        Return the timeout to use for the next blocking call: the *default*, capped to the time remaining until the
        deadline.
        """

        self.check()
        if self.deadline is None:
            return default
        return max(0.001, min(default, self.deadline - time.monotonic()))
