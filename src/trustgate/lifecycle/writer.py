"""Background Activity Writer - fire-and-forget activity logging."""

import atexit, logging, queue, threading
from typing import Optional

from trustgate.common.constants import WorkerConstants
from trustgate.data.schemas import SessionActivity
from trustgate.store.base import SessionStore

logger = logging.getLogger(__name__)


class BackgroundActivityWriter:
    """Queues activity records and writes them to the store off the request path."""

    DEFAULT_QUEUE_SIZE = WorkerConstants.QUEUE_SIZE
    DEFAULT_FLUSH_TIMEOUT = WorkerConstants.FLUSH_TIMEOUT_SECONDS

    def __init__(
        self,
        store: SessionStore,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        sync_fallback: bool = False,
    ):
        """Initialize background activity writer.

        Args:
            store: Session store receiving the activities.
            max_queue_size: Maximum number of activities to buffer.
            flush_timeout: Timeout for draining the queue on shutdown.
            sync_fallback: Write synchronously instead of dropping when the queue is full.
        """
        self.store = store
        self.max_queue_size = max_queue_size
        self.flush_timeout = flush_timeout
        self.sync_fallback = sync_fallback

        self._queue: queue.Queue[Optional[SessionActivity]] = queue.Queue(
            maxsize=max_queue_size
        )
        self._shutdown_event = threading.Event()
        self._writer_thread: Optional[threading.Thread] = None

        self._written = 0
        self._failed = 0
        self._dropped = 0
        self._stats_lock = threading.Lock()

        self._start_writer()
        atexit.register(self.shutdown)

    def _start_writer(self) -> None:
        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="ActivityWriter",
            daemon=True,
        )
        self._writer_thread.start()
        logger.info("Background activity writer started")

    def _write(self, activity: SessionActivity) -> None:
        try:
            self.store.add_activity(activity)
            with self._stats_lock:
                self._written += 1
        except Exception as e:
            # Activity logging must never surface to the request
            with self._stats_lock:
                self._failed += 1
            logger.error(
                f"Failed to write activity {activity.action} for session {activity.session_id}: {e}"
            )

    def _writer_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                activity = self._queue.get(timeout=WorkerConstants.QUEUE_GET_TIMEOUT)
            except queue.Empty:
                continue

            try:
                if activity is None:
                    break
                self._write(activity)
            finally:
                self._queue.task_done()

        self._drain_queue()
        logger.info("Background activity writer stopped")

    def _drain_queue(self) -> None:
        drained = 0
        while True:
            try:
                activity = self._queue.get_nowait()
            except queue.Empty:
                break
            if activity is not None:
                self._write(activity)
                drained += 1
            self._queue.task_done()

        if drained > 0:
            logger.info(f"Drained {drained} activities during shutdown")

    def submit(self, activity: SessionActivity) -> bool:
        """Queue an activity for writing.

        Returns:
            False if the activity was dropped because the queue is full
        """
        if self._shutdown_event.is_set():
            self._write(activity)
            return True

        try:
            self._queue.put_nowait(activity)
            return True
        except queue.Full:
            if self.sync_fallback:
                logger.warning("Activity queue full, writing synchronously")
                self._write(activity)
                return True
            with self._stats_lock:
                self._dropped += 1
            logger.error(f"Activity queue full, dropped {activity.action} for {activity.session_id}")
            return False

    def flush(self) -> None:
        """Block until every queued activity has been written."""
        self._queue.join()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        if self._shutdown_event.is_set():
            return

        timeout = timeout if timeout is not None else self.flush_timeout
        logger.info("Shutting down background activity writer...")
        self._shutdown_event.set()

        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass  # writer sees the shutdown event

        if self._writer_thread and self._writer_thread.is_alive():
            self._writer_thread.join(timeout=timeout)
            if self._writer_thread.is_alive():
                logger.warning("Activity writer did not stop cleanly")

        logger.info(
            f"Activity writer shutdown complete. "
            f"Written: {self._written}, Failed: {self._failed}, Dropped: {self._dropped}"
        )

    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                "written": self._written,
                "failed": self._failed,
                "dropped": self._dropped,
                "queue_size": self._queue.qsize(),
                "max_queue_size": self.max_queue_size,
            }

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()
