import logging

logger = logging.getLogger(__name__)

BADGE_TEXT = "ON"
BADGE_COLOR = "#22C55E"


class ConsoleIndicator:
    def __init__(self):
        self.state = None

    def set_on(self, text, color):
        self.state = (text, color)
        logger.info("[BADGE] %s (%s)", text, color)

    def clear(self):
        self.state = None
        logger.info("[BADGE] cleared")


class BadgeNotifier:
    """Mirrors the active timer onto an indicator with ``set_on(text, color)`` / ``clear()``."""

    def __init__(self, store, indicator):
        self.store = store
        self.indicator = indicator
        self._unsubscribe = None

    def attach(self):
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.update)
        self.update(self.store.read())
        return self

    def detach(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def update(self, timer):
        if timer:
            self.indicator.set_on(BADGE_TEXT, BADGE_COLOR)
        else:
            self.indicator.clear()
