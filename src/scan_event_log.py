"""
Fire-and-forget write-behind queue for scan events.

Every resolved scan is appended to the backend's scan log. The scan flow must
never wait on, or fail because of, that write, so events are handed to a
daemon thread that drains them in order. A failed write is logged and dropped.
"""

import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Optional

from logger import get_logger

logger = get_logger(__name__)


def make_scan_event(barcode: str, success: bool, matched_product_id: Optional[str] = None) -> Dict[str, Any]:
    """Build the event payload {barcode, success, matched_product_id, timestamp}."""
    return {
        'barcode': barcode,
        'success': success,
        'matched_product_id': matched_product_id,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }


class ScanEventLog:
    """
    Write-behind queue in front of a scan event sink.

    Behaviour:
    - record(...): non-blocking, never raises
    - flush(): blocking, waits until every queued event has been attempted
    - shutdown(): flush then stop the daemon thread

    Unlike a state writer, events are not coalesced: every scan is kept and
    written in arrival order.

    sync_mode=True skips the background thread and writes inline; useful for
    unit tests that assert the sink was called.
    """

    def __init__(
        self,
        write_fn: Callable[[Dict[str, Any]], None],
        sync_mode: bool = False,
    ) -> None:
        self._write_fn = write_fn
        self._sync_mode = sync_mode

        if sync_mode:
            return

        self._condition = threading.Condition()
        self._pending: Deque[Dict[str, Any]] = deque()
        self._is_writing: bool = False
        self._stop = False
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="scan-event-writer"
        )
        self._thread.start()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record(self, barcode: str, success: bool, matched_product_id: Optional[str] = None) -> None:
        """
        Queue one scan event. Never raises.

        Args:
            barcode: Scanned code
            success: Whether a product was found for it
            matched_product_id: Id of the found product, if any
        """
        event = make_scan_event(barcode, success, matched_product_id)

        if self._sync_mode:
            self._write(event)
            return

        with self._condition:
            if self._stop:
                logger.debug(f"Scan event log stopped, dropping event for {barcode}")
                return
            self._pending.append(event)
            self._condition.notify()

    def flush(self) -> None:
        """Block until the queue is empty and no write is in progress."""
        if self._sync_mode:
            return

        with self._condition:
            while self._pending or self._is_writing:
                self._condition.wait()

    def shutdown(self) -> None:
        """
        Flush queued events then stop the background thread.

        Safe to call multiple times.
        """
        if self._sync_mode:
            return

        self.flush()
        with self._condition:
            self._stop = True
            self._condition.notify()
        self._thread.join(timeout=10)

    # ------------------------------------------------------------------
    # Background thread
    # ------------------------------------------------------------------

    def _write(self, event: Dict[str, Any]) -> None:
        try:
            self._write_fn(event)
        except Exception as e:
            # Logging failures must never reach the agent
            logger.warning(f"Failed to log scan event for {event.get('barcode')}: {e}")

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._pending and not self._stop:
                    self._condition.wait()

                if self._stop and not self._pending:
                    break

                event = self._pending.popleft()
                self._is_writing = True

            try:
                self._write(event)
            finally:
                with self._condition:
                    self._is_writing = False
                    self._condition.notify_all()
