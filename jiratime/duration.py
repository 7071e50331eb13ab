import math
import re
import time
from dataclasses import dataclass

MINIMUM_WORKLOG_SECONDS = 60
TOUCH_GRASS_SECONDS = 8 * 3600

UNIT_SECONDS = {
    'w': 5 * 8 * 3600,
    'd': 8 * 3600,
    'h': 3600,
    'm': 60,
}

_TOKEN_RE = re.compile(r"(\d+(?:\.\d+)?|\.\d+)\s*([wdhm])(?![a-z])", re.IGNORECASE)
_BARE_NUMBER_RE = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)$")


def parse_duration(text):
    if not text:
        return 0
    text = text.strip()

    tokens = _TOKEN_RE.findall(text)
    if tokens:
        total = sum(float(amount) * UNIT_SECONDS[unit.lower()] for amount, unit in tokens)
        return int(round(total))

    # a bare number means minutes
    if _BARE_NUMBER_RE.match(text):
        return int(round(float(text) * 60))
    return 0


def format_duration(seconds):
    if not seconds:
        return "0m"

    seconds = int(seconds)
    h, rem = divmod(seconds, 3600)
    m = rem // 60

    parts = []
    if h > 0: parts.append(f"{h}h")
    if m > 0: parts.append(f"{m}m")
    if not parts and seconds > 0:
        return "<1m"
    return " ".join(parts)


def format_live_duration(start_time, now=None):
    now = time.time() if now is None else now
    diff = max(0, math.floor(now - start_time))
    h, rem = divmod(diff, 3600)
    m, s = divmod(rem, 60)

    parts = []
    if h > 0: parts.append(f"{h}h")
    parts.append(f"{m}m")
    parts.append(f"{s}s")
    return " ".join(parts)


@dataclass(frozen=True)
class WorklogDuration:
    """Time spent on a worklog, either whole seconds or Jira duration text ("2h 15m")."""

    kind: str
    value: object

    @classmethod
    def seconds(cls, value):
        return cls('seconds', int(value))

    @classmethod
    def text(cls, value):
        return cls('text', str(value).strip())

    @classmethod
    def of(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise TypeError("duration must be seconds or duration text")
        if isinstance(value, (int, float)):
            return cls.seconds(value)
        if isinstance(value, str):
            return cls.text(value)
        raise TypeError(f"unsupported duration type: {type(value).__name__}")

    def to_payload(self):
        if self.kind == 'seconds':
            return {"timeSpentSeconds": self.value}
        return {"timeSpent": self.value}

    def __str__(self):
        if self.kind == 'seconds':
            return f"{format_duration(self.value)} ({self.value}s)"
        return self.value
