"""
Event state change notification.

Voting clients need to learn when an admin moves to another candidate, switches
phase, or ends the event. Two adapters share one subscribe() interface:

- PushNotifier: in-process publish/subscribe, fed by EventProgression after each
  committed transition.
- PollingWatcher: re-fetches the state every POLL_INTERVAL_SECONDS and notifies
  subscribers when the snapshot differs from the previous one.

Neither the state machine nor the voting client depends on which one is used.
"""

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from config import POLL_INTERVAL_SECONDS, get_logger
from exceptions import ChapterVoteError

logger = get_logger(__name__)


@dataclass(frozen=True)
class EventState:
    event_id: Optional[int]
    phase: Optional[str]
    current_candidate_index: int
    is_ended: bool

    @classmethod
    def from_event(cls, event) -> "EventState":
        if event is None:
            return cls(event_id=None, phase=None, current_candidate_index=0, is_ended=True)
        return cls(event_id=event.id, phase=event.phase.value,
                   current_candidate_index=event.current_candidate_index,
                   is_ended=event.is_ended)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "phase": self.phase,
            "current_candidate_index": self.current_candidate_index,
            "is_ended": self.is_ended,
        }


Listener = Callable[[EventState], None]


class _Subscribers:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, state: EventState):
        for listener in list(self._listeners):
            listener(state)


class PushNotifier(_Subscribers):
    def publish(self, state: EventState):
        logger.debug("event state published", **state.to_dict())
        self._notify(state)


class PollingWatcher(_Subscribers):
    """Fixed-interval re-fetch of the event state.

    fetch_state is any zero-argument callable returning an EventState, e.g.
    ``lambda: EventState.from_event(store.get_active_event())``.
    """

    def __init__(self, fetch_state: Callable[[], EventState],
                 interval: float = POLL_INTERVAL_SECONDS):
        super().__init__()
        self.fetch_state = fetch_state
        self.interval = interval
        self.last_state: Optional[EventState] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def poll_once(self) -> bool:
        """Fetch once; notify and return True when the state changed."""
        state = self.fetch_state()
        changed = state != self.last_state
        # last write wins: a newer poll always replaces the remembered state
        self.last_state = state
        if changed:
            self._notify(state)
        return changed

    def run(self, stop: threading.Event):
        while not stop.is_set():
            try:
                self.poll_once()
            except ChapterVoteError as e:
                # the next tick fetches again
                logger.warning("event state poll failed", error=e.message)
            stop.wait(self.interval)

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, args=(self._stop,), daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
