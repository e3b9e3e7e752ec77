"""
access_log.py

Fire-and-forget writer for access log entries. Writes run on a single
background worker so the admission response never waits on storage.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from core.exceptions import AuditWriteFailure
from utils.logger_config import get_logger

logger = get_logger(__name__)


class AccessLogWriter:
    """
    Queue access log entries for persistence.

    Args:
        store: Callable persisting one entry. It may return ``(ok, message)``
            like ``db.record_access_log`` or raise on failure.
    """

    def __init__(self, store):
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="access-log")
        self._pending = set()
        self._idle = threading.Condition()

    def __call__(self, entry):
        self.submit(entry)

    def submit(self, entry):
        with self._idle:
            try:
                future = self._executor.submit(self._write, entry)
            except RuntimeError as e:
                logger.error(f"Access log writer unavailable, dropping entry: {e}")
                return None
            self._pending.add(future)
        future.add_done_callback(self._finished)
        return future

    def _write(self, entry):
        try:
            outcome = self.store(entry)
        except Exception as e:
            raise AuditWriteFailure(str(e)) from e
        if isinstance(outcome, tuple) and not outcome[0]:
            raise AuditWriteFailure(outcome[1] if len(outcome) > 1 else "store rejected entry")
        return outcome

    def _finished(self, future):
        error = future.exception()
        if error is not None:
            logger.error(f"Failed to write access log entry: {error}")
        with self._idle:
            self._pending.discard(future)
            self._idle.notify_all()

    def wait(self, timeout=None):
        """Block until queued writes finish. Returns True if none are left pending."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
            return True

    def shutdown(self, wait_for_pending=True):
        self._executor.shutdown(wait=wait_for_pending)
