import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_NAME = "config.json"
TIMER_STATE_NAME = "active_timer.json"
THEMES = ('light', 'dark', 'system')


def app_dir():
    home = os.environ.get("JIRATIME_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".jiratime"


def default_config_path():
    return app_dir() / CONFIG_NAME


def default_timer_path():
    return app_dir() / TIMER_STATE_NAME


def split_filter(value):
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@dataclass
class AppSettings:
    jira_server: str = ""
    jira_username: str = ""
    jira_api_token: str = ""
    theme: str = 'system'
    pinned_ticket_keys: list = field(default_factory=list)
    filter_statuses: str = ""
    filter_issue_types: str = ""
    log_level: str = "INFO"

    def __post_init__(self):
        self.jira_server = (self.jira_server or "").strip().rstrip('/')
        self.jira_username = (self.jira_username or "").strip()
        self.jira_api_token = (self.jira_api_token or "").strip()
        if self.theme not in THEMES:
            logger.warning("Unknown theme '%s' in config, using 'system'.", self.theme)
            self.theme = 'system'
        self.pinned_ticket_keys = list(self.pinned_ticket_keys or [])

    def is_configured(self):
        return bool(self.jira_server and self.jira_api_token)

    def pin(self, key):
        key = key.strip().upper()
        if key and key not in self.pinned_ticket_keys:
            self.pinned_ticket_keys.append(key)
        return self.pinned_ticket_keys

    def unpin(self, key):
        key = key.strip().upper()
        self.pinned_ticket_keys = [k for k in self.pinned_ticket_keys if k != key]
        return self.pinned_ticket_keys

    @classmethod
    def load(cls, path=None):
        path = Path(path) if path else default_config_path()
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info("Config file not found: %s (using defaults)", path)
            return cls()
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON format in file: {path}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a JSON object: {path}")

        allowed = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - allowed)
        if unknown:
            logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(unknown))
        settings = cls(**{key: value for key, value in data.items() if key in allowed})
        logger.info("Config loaded from %s", path)
        return settings

    def save(self, path=None):
        path = Path(path) if path else default_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), ensure_ascii=False, indent=2), encoding='utf-8')
        logger.info("Config saved to %s", path)
