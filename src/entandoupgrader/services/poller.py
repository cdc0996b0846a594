"""Readiness polling primitive shared by scaling, apply and operator steps."""

import threading
import time
from typing import Callable, Optional

from entandoupgrader.errors import DeadlineExceeded, RunAborted
from entandoupgrader.errors_catalog import actionable_error
from entandoupgrader.services.cluster import is_transient


class ReadinessPoller:
    """Re-evaluates a predicate until it holds, the deadline passes or the run is cancelled."""

    def __init__(
        self,
        logger,
        interval: float = 3.0,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.logger = logger
        self.interval = interval
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self):
        self.cancel_event.set()

    def wait_until(
        self,
        predicate: Callable[[], bool],
        description: str,
        tolerate_lookup_errors: bool = True,
    ) -> int:
        """Returns the number of evaluations it took for ``predicate`` to hold."""
        started = time.monotonic()
        attempts = 0

        while True:
            if self.cancel_event.is_set():
                raise RunAborted(f"Cancelled while waiting for {description}.")

            attempts += 1
            try:
                if predicate():
                    self.logger.debug("%s ready after %s check(s)", description, attempts)
                    return attempts
            except Exception as exc:
                if not (tolerate_lookup_errors and is_transient(exc)):
                    raise
                self.logger.debug("%s not ready yet: %s", description, exc)

            if self.timeout is not None and time.monotonic() - started >= self.timeout:
                raise DeadlineExceeded(
                    actionable_error(
                        "deadline_exceeded",
                        timeout=f"{self.timeout:g}",
                        description=description,
                    )
                )

            time.sleep(self.interval)
