"""
Playback monitor: polls the player while a file is playing and keeps its
watch record in sync.

At most one session is active. Every tick runs on a one-shot timer that is
re-armed only after the tick has finished, so polls never overlap. The HTTP
poll runs outside the lock; the rest of the tick runs under it and is
discarded if the session was stopped or replaced while the poll was in
flight.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

from mediatracker.domain import MonitorStatus, Sample, SessionEnded, WatchRecord
from mediatracker.errors import PollError, StoreError
from mediatracker.interfaces import IRepository, IStatusClient
from mediatracker.reconciler import COMPLETION_THRESHOLD, SessionProgress, reconcile

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_FAILURES = 15
DEFAULT_SUBSCRIPTION_SIZE = 256

TimerFactory = Callable[[float, Callable[[], None]], Any]


def _daemon_timer(interval: float, fn: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, fn)
    timer.daemon = True
    return timer


@dataclass
class MonitorSession:
    """One monitoring run for a single file, owned by a MonitorController."""
    target_path: str
    status: MonitorStatus = MonitorStatus.ACTIVE
    poll_handle: Any = None
    progress: SessionProgress = field(default_factory=SessionProgress)
    record: Optional[WatchRecord] = None  # Authoritative until the next successful write
    record_loaded: bool = False
    consecutive_failures: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == MonitorStatus.ACTIVE


class EventSubscription:
    """
    Bounded, ordered queue of monitor events for one consumer.
    When full, the oldest event is dropped. Events published before the
    subscription was created are never delivered.
    """

    def __init__(self, owner: "MonitorController", maxsize: int = DEFAULT_SUBSCRIPTION_SIZE):
        self._owner = owner
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, event: Any) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[Any]:
        try:
            return self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[Any]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._owner.unsubscribe(self)


class MonitorController:
    """Owns the polling timer and the single active monitoring session."""

    def __init__(self, status_client: IStatusClient, repository: IRepository,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 completion_threshold: float = COMPLETION_THRESHOLD,
                 max_consecutive_failures: int = DEFAULT_MAX_FAILURES,
                 timer_factory: TimerFactory = _daemon_timer,
                 clock: Callable[[], datetime] = datetime.now):
        self.status_client = status_client
        self.repository = repository
        self.poll_interval = poll_interval
        self.completion_threshold = completion_threshold
        self.max_consecutive_failures = max_consecutive_failures
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.RLock()
        self._session: Optional[MonitorSession] = None
        self._listeners: List[Callable[[Any], None]] = []
        self._error_listeners: List[Callable[[Exception], None]] = []
        self._subscriptions: List[EventSubscription] = []

    # --- Delivery ---

    def add_listener(self, cb: Callable[[Any], None]) -> None:
        with self._lock:
            self._listeners.append(cb)

    def remove_listener(self, cb: Callable[[Any], None]) -> None:
        with self._lock:
            if cb in self._listeners:
                self._listeners.remove(cb)

    def on_error(self, cb: Callable[[Exception], None]) -> None:
        with self._lock:
            self._error_listeners.append(cb)

    def subscribe(self, maxsize: int = DEFAULT_SUBSCRIPTION_SIZE) -> EventSubscription:
        subscription = EventSubscription(self, maxsize=maxsize)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _emit(self, event: Any) -> None:
        for subscription in list(self._subscriptions):
            subscription.put(event)
        for cb in list(self._listeners):
            try:
                cb(event)
            except Exception:
                logger.exception("Monitor event listener failed for %s", event)

    def _emit_error(self, error: Exception) -> None:
        for cb in list(self._error_listeners):
            try:
                cb(error)
            except Exception:
                logger.exception("Monitor error listener failed")

    # --- Commands ---

    @property
    def status(self) -> MonitorStatus:
        with self._lock:
            return self._session.status if self._session else MonitorStatus.IDLE

    @property
    def active_session(self) -> Optional[MonitorSession]:
        with self._lock:
            return self._session

    def start(self, path: str) -> MonitorSession:
        """Begins monitoring `path`, replacing any running session."""
        with self._lock:
            if self._session is not None:
                logger.info("Replacing monitoring session for %s", self._session.target_path)
                self._cancel(self._session)
            session = MonitorSession(target_path=path)
            self._session = session
            self._schedule(session)
        logger.info("Started monitoring %s (every %.1fs)", path, self.poll_interval)
        return session

    def stop(self) -> None:
        """Stops the active session. Does nothing when already idle."""
        with self._lock:
            session = self._session
            if session is None:
                return
            self._cancel(session)
            self._session = None
        logger.info("Stopped monitoring %s", session.target_path)

    def get_live_status(self) -> Union[Sample, PollError]:
        """Queries the player once, outside the timer cadence."""
        try:
            return self.status_client.poll()
        except PollError as e:
            return e

    # --- Timer handling ---

    def _schedule(self, session: MonitorSession) -> None:
        timer = self._timer_factory(self.poll_interval, lambda: self._tick(session))
        session.poll_handle = timer
        timer.start()

    def _cancel(self, session: MonitorSession) -> None:
        session.status = MonitorStatus.STOPPING
        if session.poll_handle is not None:
            session.poll_handle.cancel()
            session.poll_handle = None
        session.status = MonitorStatus.IDLE

    def _finish(self, session: MonitorSession, reason: str) -> None:
        self._cancel(session)
        if self._session is session:
            self._session = None
        logger.info("Monitoring of %s ended (%s)", session.target_path, reason)
        self._emit(SessionEnded(file_path=session.target_path, reason=reason))

    def _tick(self, session: MonitorSession) -> None:
        if not session.is_active:
            return

        try:
            sample: Optional[Sample] = self.status_client.poll()
            error: Optional[PollError] = None
        except PollError as e:
            sample, error = None, e

        with self._lock:
            if not session.is_active or self._session is not session:
                logger.debug("Discarding stale tick for %s", session.target_path)
                return
            try:
                if error is not None:
                    self._handle_poll_error(session, error)
                else:
                    self._handle_sample(session, sample)
            except Exception:
                logger.exception("Monitor tick failed for %s", session.target_path)
            if session.is_active and self._session is session:
                self._schedule(session)

    def _handle_poll_error(self, session: MonitorSession, error: PollError) -> None:
        session.consecutive_failures += 1
        logger.warning("Status poll failed for %s (%s, %d in a row): %s",
                       session.target_path, error.kind.value,
                       session.consecutive_failures, error.message)
        if self.max_consecutive_failures and session.consecutive_failures >= self.max_consecutive_failures:
            self._finish(session, "unreachable")

    def _handle_sample(self, session: MonitorSession, sample: Sample) -> None:
        session.consecutive_failures = 0
        logger.debug("Status for %s: %s %.3f %.0f/%.0f", session.target_path,
                     sample.state.value, sample.position, sample.time, sample.length)

        if not session.record_loaded:
            try:
                session.record = self.repository.get(session.target_path)
            except StoreError as e:
                logger.warning("Could not load watch record for %s: %s", session.target_path, e)
                self._emit_error(e)
                return
            session.record_loaded = True

        result = reconcile(session.record, sample, session.progress, session.target_path,
                           now=self._clock(), threshold=self.completion_threshold)

        if result.ended:
            self._finish(session, "stopped")
            return

        session.record = result.record
        session.progress = result.progress
        try:
            self.repository.upsert(result.record)
        except StoreError as e:
            logger.error("Could not persist progress for %s: %s", session.target_path, e)
            self._emit_error(e)

        for event in result.events:
            self._emit(event)
