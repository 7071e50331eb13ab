from __future__ import annotations

from typing import Any

import pytest

from jiratime.config import AppSettings
from jiratime.duration import WorklogDuration
from jiratime.errors import SubmissionFailed
from jiratime.jira import IssueType, Ticket, TicketStatus
from jiratime.storage import MemoryTimerStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeJira:
    """Stands in for the ``jiratime.jira`` module inside a TimerSession."""

    def __init__(self) -> None:
        self.permission: Any = True
        self.fail_submissions = 0
        self.submissions: list[tuple[str, WorklogDuration, str | None]] = []
        self.permission_checks: list[str] = []

    def check_permission(self, settings, ticket_key):
        self.permission_checks.append(ticket_key)
        if isinstance(self.permission, Exception):
            raise self.permission
        return self.permission

    def submit_worklog(self, settings, ticket_id, duration, comment=None):
        if self.fail_submissions:
            self.fail_submissions -= 1
            raise SubmissionFailed(500, "Internal Server Error")
        self.submissions.append((ticket_id, WorklogDuration.of(duration), comment))
        return {"id": str(len(self.submissions))}


def make_ticket(ticket_id: str = "10001", key: str = "X-1", summary: str = "Fix the thing") -> Ticket:
    return Ticket(
        id=ticket_id,
        key=key,
        summary=summary,
        time_spent_seconds=0,
        issue_type=IssueType(name="Task"),
        status=TicketStatus(name="In Progress", category_key="indeterminate"),
    )


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        jira_server="https://example.atlassian.net/",
        jira_username="dev@example.com",
        jira_api_token="secret-token",
    )


@pytest.fixture
def store() -> MemoryTimerStore:
    return MemoryTimerStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def ticket_factory():
    return make_ticket
