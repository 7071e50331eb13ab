from dataclasses import dataclass


class JiraTimeError(Exception):
    pass


class ConfigError(JiraTimeError):
    pass


class ValidationFailed(JiraTimeError):
    pass


class SessionBusy(JiraTimeError):
    pass


class PermissionDenied(JiraTimeError):
    def __init__(self, ticket_key):
        self.ticket_key = ticket_key
        super().__init__(f"No permission to log work on {ticket_key}.")


class PermissionCheckFailed(JiraTimeError):
    def __init__(self, ticket_key, reason):
        self.ticket_key = ticket_key
        self.reason = reason
        super().__init__(f"Permission check for {ticket_key} failed: {reason}")


class JiraApiError(JiraTimeError):
    prefix = "Jira API Error"

    def __init__(self, status_code, body="", message=None):
        self.status_code = status_code
        self.body = body or ""
        status = status_code if status_code is not None else "N/A"
        text = message or f"{self.prefix}: {status} - {self.body[:500]}"
        super().__init__(text)


class SubmissionFailed(JiraApiError):
    prefix = "Failed to log time"


@dataclass(frozen=True)
class DiscardConfirmed:
    """Record of tracked time the user explicitly chose to throw away."""

    ticket_id: str
    lost_seconds: int
