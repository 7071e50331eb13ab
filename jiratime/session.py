import logging
import math
import threading
import time
from contextlib import contextmanager

from . import jira
from .duration import (
    MINIMUM_WORKLOG_SECONDS,
    TOUCH_GRASS_SECONDS,
    WorklogDuration,
    format_duration,
    format_live_duration,
    parse_duration,
)
from .errors import (
    DiscardConfirmed,
    PermissionCheckFailed,
    PermissionDenied,
    SessionBusy,
    SubmissionFailed,
    ValidationFailed,
)
from .storage import ActiveTimer

logger = logging.getLogger(__name__)

STOP_LABEL = "Stop & Save"
RETRY_LABEL = "Retry Save"
TOUCH_GRASS_MESSAGE = "Whoa, that's {duration}! Go touch some grass.\n(Saving your time anyway...)"


class TimerSession:
    """Start/stop/discard controller for the timer of one ticket.

    Only one timer runs at a time; the UI is expected to check ``blocked``
    before offering Start. Calls on the same session are serialized, calls
    on different sessions are not.
    """

    def __init__(self, store, settings, ticket, clock=time.time, notify=None, client=jira):
        self.store = store
        self.settings = settings
        self.ticket = ticket
        self.clock = clock
        self.notify = notify or self._log_notice
        self.client = client
        self.description = ""
        self.last_error = None
        self._submit_failed = False
        self._lock = threading.Lock()

    @property
    def active_timer(self):
        return self.store.read()

    @property
    def is_running(self):
        timer = self.active_timer
        return timer is not None and timer.ticket_id == self.ticket.id

    @property
    def blocked(self):
        timer = self.active_timer
        return timer is not None and timer.ticket_id != self.ticket.id

    @property
    def busy(self):
        return self._lock.locked()

    @property
    def save_label(self):
        return RETRY_LABEL if self._submit_failed else STOP_LABEL

    def elapsed_seconds(self):
        timer = self.active_timer
        if timer is None or timer.ticket_id != self.ticket.id:
            return 0
        return max(0, math.floor(self.clock() - timer.start_time))

    def live_duration(self):
        timer = self.active_timer
        if timer is None or timer.ticket_id != self.ticket.id:
            return ""
        return format_live_duration(timer.start_time, now=self.clock())

    @contextmanager
    def _exclusive(self, action):
        if not self._lock.acquire(blocking=False):
            raise SessionBusy(f"{self.ticket.key}: {action} ignored, another request is still running.")
        try:
            yield
        finally:
            self._lock.release()

    def start(self, on_check_failed=None):
        with self._exclusive("start"):
            if self.is_running:
                raise ValidationFailed(f"Timer already running for {self.ticket.key}.")
            try:
                allowed = self.client.check_permission(self.settings, self.ticket.key)
            except PermissionCheckFailed as e:
                logger.warning("%s", e)
                if not (on_check_failed and on_check_failed(e)):
                    raise
                logger.info("Starting %s without a successful permission check.", self.ticket.key)
                allowed = True

            if not allowed:
                raise PermissionDenied(self.ticket.key)

            timer = ActiveTimer(ticket_id=self.ticket.id, start_time=self.clock())
            self.store.write(timer)
            self.last_error = None
            self._submit_failed = False
            logger.info("Timer started for %s (%s).", self.ticket.key, self.ticket.id)
            return timer

    def stop(self):
        with self._exclusive("stop"):
            timer = self.active_timer
            if timer is None or timer.ticket_id != self.ticket.id:
                raise ValidationFailed(f"No timer running for {self.ticket.key}.")

            elapsed = max(0, math.floor(self.clock() - timer.start_time))
            logger.info("Timer stopped for %s. Elapsed: %ss.", self.ticket.key, elapsed)
            self._check_touch_grass(elapsed)

            # Jira rejects zero-length worklogs
            seconds = max(elapsed, MINIMUM_WORKLOG_SECONDS)

            self.last_error = None
            try:
                self.client.submit_worklog(
                    self.settings, self.ticket.id, WorklogDuration.seconds(seconds),
                    comment=self.description.strip() or None,
                )
            except SubmissionFailed as e:
                self.last_error = str(e)
                self._submit_failed = True
                logger.error("!! Failed to save timer for %s, timer kept running: %s", self.ticket.key, e)
                raise

            self.store.write(None)
            self.description = ""
            self.last_error = None
            self._submit_failed = False
            return seconds

    def discard(self, confirm):
        with self._exclusive("discard"):
            timer = self.active_timer
            if timer is None or timer.ticket_id != self.ticket.id:
                raise ValidationFailed(f"No timer running for {self.ticket.key}.")

            if not confirm(timer):
                logger.info("Discard of %s cancelled.", self.ticket.key)
                return None

            lost = max(0, math.floor(self.clock() - timer.start_time))
            self.store.write(None)
            self.description = ""
            self.last_error = None
            self._submit_failed = False
            logger.warning("!! Timer for %s discarded, %s of tracked time dropped.",
                           self.ticket.key, format_duration(lost))
            return DiscardConfirmed(ticket_id=self.ticket.id, lost_seconds=lost)

    def log_manual(self, duration_text, comment=None):
        duration_text = (duration_text or "").strip()
        if not duration_text:
            raise ValidationFailed("Enter a duration, e.g. 1h 30m.")

        with self._exclusive("manual log"):
            seconds = parse_duration(duration_text)
            if seconds > 0:
                self._check_touch_grass(seconds)
            else:
                logger.info("Could not parse '%s' locally, letting Jira decide.", duration_text)

            self.last_error = None
            try:
                self.client.submit_worklog(
                    self.settings, self.ticket.id, WorklogDuration.text(duration_text),
                    comment=(comment or "").strip() or None,
                )
            except SubmissionFailed as e:
                self.last_error = str(e)
                raise
            return seconds

    def _check_touch_grass(self, seconds):
        if seconds >= TOUCH_GRASS_SECONDS:
            self.notify(TOUCH_GRASS_MESSAGE.format(duration=format_duration(seconds)))

    @staticmethod
    def _log_notice(message):
        logger.warning("%s", message)
