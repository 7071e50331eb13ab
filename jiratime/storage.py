"""Shared store for the single active timer.

Every UI window and the background process read and write the same record.
Writes are last-write-wins: there is no compare-and-swap, so two processes
starting a timer at nearly the same instant can lose one of the updates.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveTimer:
    ticket_id: str
    start_time: float

    def to_dict(self):
        return {"ticket_id": self.ticket_id, "start_time": self.start_time}

    @classmethod
    def from_dict(cls, payload):
        if not payload:
            return None
        return cls(ticket_id=str(payload["ticket_id"]), start_time=float(payload["start_time"]))


class TimerStore:
    def __init__(self):
        self._listeners = []
        self._current = None
        self._lock = threading.RLock()

    def read(self):
        return self._current

    def write(self, timer):
        with self._lock:
            self._commit(timer)
            self._set(timer)

    def subscribe(self, listener):
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, timer):
        pass

    def _set(self, timer):
        if timer == self._current:
            return
        self._current = timer
        for listener in list(self._listeners):
            listener(timer)


class MemoryTimerStore(TimerStore):
    def __init__(self, timer=None):
        super().__init__()
        self._current = timer


class FileTimerStore(TimerStore):
    """Keeps the record in a JSON file; ``poll()`` picks up writes made by other processes."""

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        self._current = self._load()

    def read(self):
        self.poll()
        return self._current

    def poll(self):
        # a write from another thread must not land between the read and the notify
        with self._lock:
            self._set(self._load())
            return self._current

    def _load(self):
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable timer state in %s, treating as no timer: %s", self.path, e)
            return None

        try:
            return ActiveTimer.from_dict(data.get("active_timer"))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed timer record in %s, treating as no timer: %s", self.path, e)
            return None

    def _commit(self, timer):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"active_timer": timer.to_dict() if timer else None}
        fd, tmp_name = tempfile.mkstemp(prefix=".active_timer.", dir=self.path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Timer state written to %s: %s", self.path, payload["active_timer"])
