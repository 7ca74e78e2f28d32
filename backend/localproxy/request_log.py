import logging, queue, threading, time
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from .models import LogEvent, Decision
from .utils import now_utc, epoch_ms

log = logging.getLogger("request_log")

DEFAULT_QUEUE_SIZE = 1000

class PendingEvent(BaseModel):
    model_config = ConfigDict(frozen=True)
    host: str
    method: str
    path: str = ""
    port: int = Field(ge=0, le=65535)  # "443" is accepted, "https" is not
    approved: bool
    duration: int = Field(default=0, ge=0)  # nanoseconds, measured by the caller
    captured_at: Optional[int] = None  # epoch ms, only when stamping on enqueue

_STOP = object()

class LogWriter:
    """Bounded queue of request events drained by one background thread.

    :meth:`log_request` never blocks and never raises; a full queue, a stopped
    writer or a malformed event all count as a drop.
    """

    def __init__(self, session_factory, maxsize: int = DEFAULT_QUEUE_SIZE,
                 stamp_on_enqueue: bool = False, slow_write_ms: float = 250):
        self._sessions = session_factory
        self._queue = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self._accepting = False
        self._stop_sent = False
        self._thread: Optional[threading.Thread] = None
        self.stamp_on_enqueue = stamp_on_enqueue
        self.slow_write_ms = slow_write_ms
        self._dropped = 0
        self._written = 0
        self._failed = 0

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def written(self) -> int:
        return self._written

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._lock:
            if self.running:
                return
            self._accepting = True
            self._stop_sent = False
            self._thread = threading.Thread(target=self._run, name="request-log-writer", daemon=True)
            self._thread.start()
        log.info("Request log writer started (queue size %d)", self._queue.maxsize)

    def log_request(self, host: str, method: str, path: str, port: int,
                    approved: bool, duration: int) -> bool:
        try:
            ev = PendingEvent(
                host=host,
                method=str(method or "").upper(),
                path=path or "",
                port=port,
                approved=bool(approved),
                duration=duration,
                captured_at=epoch_ms(now_utc()) if self.stamp_on_enqueue else None,
            )
        except ValidationError as e:
            with self._lock:
                self._dropped += 1
            log.warning("Malformed request log event for %r, dropping: %s", host, e.errors()[:1])
            return False
        with self._lock:
            if not self._accepting:
                self._dropped += 1
                log.warning("Request log writer not running, dropping request for %s", host)
                return False
            try:
                self._queue.put_nowait(ev)
            except queue.Full:
                self._dropped += 1
                log.warning("Log queue full, dropping request for %s", host)
                return False
        return True

    def join(self):
        """Block until every queued event has been handled by the worker."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Stop accepting events and drain the queue.

        Returns False when ``timeout`` expired before the worker finished;
        the worker keeps draining in the background in that case.
        """
        with self._lock:
            self._accepting = False
        thread = self._thread
        if thread is None:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._stop_sent:
            try:
                # FIFO: the sentinel lands behind every event accepted so far
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                log.warning("Request log writer did not drain within %.1fs (%d pending)",
                            timeout, self.pending)
                return False
            self._stop_sent = True
        thread.join(None if deadline is None else max(0.0, deadline - time.monotonic()))
        if thread.is_alive():
            log.warning("Request log writer did not drain within %.1fs (%d pending)",
                        timeout, self.pending)
            return False
        log.info("Request log writer stopped: %d written, %d dropped, %d failed",
                 self._written, self._dropped, self._failed)
        return True

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._persist(item)
            except Exception:
                self._failed += 1
                log.exception("Request log writer failed on %r", item)
            finally:
                self._queue.task_done()

    def _persist(self, ev: PendingEvent):
        started = time.monotonic()
        try:
            row = LogEvent(
                timestamp=ev.captured_at if ev.captured_at is not None else epoch_ms(now_utc()),
                host=ev.host,
                method=ev.method,
                path=ev.path,
                port=ev.port,
                decision=(Decision.APPROVED if ev.approved else Decision.REJECTED).value,
                duration=float(ev.duration),
            )
            with self._sessions.begin() as db:
                db.add(row)
        except Exception:
            self._failed += 1
            log.exception("Failed to write request log for %s", ev.host)
            return
        self._written += 1
        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms > self.slow_write_ms:
            log.warning("Slow request log write for %s: %.0f ms", ev.host, elapsed_ms)
