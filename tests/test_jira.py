from __future__ import annotations

import base64
import json
from datetime import date
from typing import Any

import pytest
import requests

from jiratime import jira
from jiratime.config import AppSettings
from jiratime.errors import ConfigError, JiraApiError, PermissionCheckFailed, SubmissionFailed


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class RecordingTransport:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.responses: list[Any] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def __call__(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def transport(monkeypatch) -> RecordingTransport:
    recorder = RecordingTransport()
    monkeypatch.setattr(jira.requests, "request", recorder)
    return recorder


def _issue(issue_id: str, key: str, category: str = "indeterminate", **fields: Any) -> dict[str, Any]:
    base = {
        "summary": f"Summary of {key}",
        "timespent": 3600,
        "issuetype": {"name": "Bug", "iconUrl": "https://example/bug.svg"},
        "status": {"name": "In Progress", "statusCategory": {"key": category}},
    }
    base.update(fields)
    return {"id": issue_id, "key": key, "fields": base}


def test_search_posts_jql_and_maps_tickets(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"issues": [
        _issue("1", "X-1"),
        _issue("2", "X-2", category="done"),
        _issue("3", "X-3", category="new", timespent=None, issuetype=None, status=None),
    ]}))

    tickets = jira.search(settings, "key = X-1")

    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://example.atlassian.net/rest/api/3/search/jql"
    assert call["json"] == {"jql": "key = X-1", "fields": jira.SEARCH_FIELDS, "maxResults": 50}
    assert call["timeout"] == jira.REQUEST_TIMEOUT

    assert [t.key for t in tickets] == ["X-1", "X-2", "X-3"]
    assert tickets[0].time_spent_seconds == 3600
    assert tickets[0].issue_type.name == "Bug"
    assert tickets[0].status.category_color == jira.STATUS_IN_PROGRESS_COLOR
    assert tickets[1].status.category_color == jira.STATUS_DONE_COLOR
    assert tickets[2].time_spent_seconds == 0
    assert tickets[2].issue_type.name == "Unknown"
    assert tickets[2].status.name == "Unknown"
    assert tickets[2].status.category_color == jira.STATUS_NEW_COLOR


def test_search_raises_with_status_and_body(settings, transport) -> None:
    transport.queue(FakeResponse(400, text='{"errorMessages": ["bad jql"]}'))

    with pytest.raises(JiraApiError) as excinfo:
        jira.search(settings, "nonsense")

    assert excinfo.value.status_code == 400
    assert "bad jql" in excinfo.value.body
    assert "400" in str(excinfo.value)


def test_basic_auth_when_email_configured(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"issues": []}))

    jira.search(settings, "key = X-1")

    expected = base64.b64encode(b"dev@example.com:secret-token").decode("ascii")
    assert transport.calls[0]["headers"]["Authorization"] == f"Basic {expected}"


def test_bearer_auth_without_email(transport) -> None:
    settings = AppSettings(jira_server="https://jira.local", jira_api_token="pat")
    transport.queue(FakeResponse(payload={"issues": []}))

    jira.search(settings, "key = X-1")

    assert transport.calls[0]["headers"]["Authorization"] == "Bearer pat"


def test_unconfigured_settings_never_hit_network(transport) -> None:
    with pytest.raises(ConfigError):
        jira.search(AppSettings(), "key = X-1")
    assert transport.calls == []


def test_in_progress_jql_defaults_to_active_statuses(settings) -> None:
    jql = jira.build_in_progress_jql(settings)

    assert jql.startswith("assignee = currentUser() AND status not in ('Done', 'Canceled'")
    assert "issuetype" not in jql
    assert jql.endswith("ORDER BY updated DESC")


def test_in_progress_jql_uses_configured_filters(settings) -> None:
    settings.filter_statuses = "In Progress, In Review ,"
    settings.filter_issue_types = "Bug"

    jql = jira.build_in_progress_jql(settings)

    assert jql == ('assignee = currentUser() AND status in ("In Progress", "In Review") '
                   'AND issuetype in ("Bug") ORDER BY updated DESC')


def test_fetch_done_uses_seven_day_window(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"issues": []}))

    jira.fetch_done(settings)

    assert transport.calls[0]["json"]["jql"] == (
        "status = 'Done' AND assignee = currentUser() AND updated >= -7d ORDER BY updated DESC"
    )


def test_fetch_by_keys_empty_short_circuits(settings, transport) -> None:
    assert jira.fetch_by_keys(settings, []) == []
    assert transport.calls == []


def test_fetch_pinned_queries_keys(settings, transport) -> None:
    settings.pinned_ticket_keys = ["X-1", "OPS-7"]
    transport.queue(FakeResponse(payload={"issues": [_issue("1", "X-1")]}))

    tickets = jira.fetch_pinned(settings)

    assert transport.calls[0]["json"]["jql"] == "key in (X-1,OPS-7)"
    assert [t.key for t in tickets] == ["X-1"]


def test_fetch_sections_keeps_other_lists_when_pinned_query_fails(settings, transport) -> None:
    settings.pinned_ticket_keys = ["GONE-1"]
    transport.queue(
        FakeResponse(400, text="An issue with key 'GONE-1' does not exist"),
        FakeResponse(payload={"issues": [_issue("2", "X-2")]}),
        FakeResponse(payload={"issues": [_issue("3", "X-3", category="done")]}),
    )

    pinned, in_progress, done = jira.fetch_sections(settings, show_done=True)

    assert [s.name for s in (pinned, in_progress, done)] == ["pinned", "in_progress", "done"]
    assert pinned.tickets == ()
    assert "400" in pinned.error and "GONE-1" in pinned.error
    assert [t.key for t in in_progress.tickets] == ["X-2"]
    assert in_progress.error is None
    assert [t.key for t in done.tickets] == ["X-3"]


def test_fetch_sections_skips_done_unless_asked(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"issues": [_issue("2", "X-2")]}))

    sections = jira.fetch_sections(settings)

    assert [s.name for s in sections] == ["pinned", "in_progress"]
    assert len(transport.calls) == 1


def test_submit_worklog_with_seconds_and_comment(settings, transport) -> None:
    transport.queue(FakeResponse(201, payload={"id": "777"}))

    result = jira.submit_worklog(settings, "10001", 65, comment="code review")

    call = transport.calls[0]
    assert call["url"].endswith("/rest/api/3/issue/10001/worklog")
    assert call["json"]["timeSpentSeconds"] == 65
    assert "timeSpent" not in call["json"]
    assert call["json"]["comment"]["type"] == "doc"
    assert call["json"]["comment"]["content"][0]["content"][0]["text"] == "code review"
    assert result == {"id": "777"}


def test_submit_worklog_with_text_duration(settings, transport) -> None:
    transport.queue(FakeResponse(201, payload={"id": "778"}))

    jira.submit_worklog(settings, "10001", "1h 30m")

    assert transport.calls[0]["json"] == {"timeSpent": "1h 30m"}


def test_submit_worklog_failure_raises(settings, transport) -> None:
    transport.queue(FakeResponse(403, text="You do not have permission"))

    with pytest.raises(SubmissionFailed) as excinfo:
        jira.submit_worklog(settings, "10001", 60)

    assert excinfo.value.status_code == 403
    assert excinfo.value.body == "You do not have permission"


def test_submit_worklog_connection_error_raises(settings, transport) -> None:
    transport.queue(requests.exceptions.ConnectionError("refused"))

    with pytest.raises(SubmissionFailed) as excinfo:
        jira.submit_worklog(settings, "10001", 60)

    assert excinfo.value.status_code is None


def test_check_permission_granted(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"permissions": {"WORK_ON_ISSUES": {"havePermission": True}}}))

    assert jira.check_permission(settings, "X-1") is True
    assert transport.calls[0]["url"].endswith("/mypermissions?issueKey=X-1&permissions=WORK_ON_ISSUES")
    assert transport.calls[0]["method"] == "GET"


def test_check_permission_denied(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"permissions": {"WORK_ON_ISSUES": {"havePermission": False}}}))

    assert jira.check_permission(settings, "X-1") is False


def test_check_permission_http_error_is_false(settings, transport) -> None:
    transport.queue(FakeResponse(404, text="Issue does not exist"))

    assert jira.check_permission(settings, "X-1") is False


def test_check_permission_transport_error_raises(settings, transport) -> None:
    transport.queue(requests.exceptions.Timeout("slow"))

    with pytest.raises(PermissionCheckFailed) as excinfo:
        jira.check_permission(settings, "X-1")

    assert excinfo.value.ticket_key == "X-1"


def test_check_permission_unparseable_body_raises(settings, transport) -> None:
    transport.queue(FakeResponse(200, text="<html>login</html>"))

    with pytest.raises(PermissionCheckFailed):
        jira.check_permission(settings, "X-1")


def test_validate_connection(settings, transport) -> None:
    transport.queue(FakeResponse(payload={"accountId": "abc"}), FakeResponse(401, text="Unauthorized"))

    assert jira.validate_connection(settings) is True
    assert jira.validate_connection(settings) is False
    assert jira.validate_connection(AppSettings()) is False


def test_fetch_todays_time_sums_own_worklogs(settings, transport) -> None:
    today = date(2026, 1, 14)
    transport.queue(
        FakeResponse(payload={"accountId": "me"}),
        FakeResponse(payload={"issues": [{"key": "X-1"}, {"key": "X-2"}]}),
        FakeResponse(payload={"worklogs": [
            {"author": {"accountId": "me"}, "started": "2026-01-14T08:00:00.000+0100", "timeSpentSeconds": 1800},
            {"author": {"accountId": "other"}, "started": "2026-01-14T09:00:00.000+0100", "timeSpentSeconds": 600},
            {"author": {"accountId": "me"}, "started": "2026-01-13T09:00:00.000+0100", "timeSpentSeconds": 900},
        ]}),
        FakeResponse(500, text="boom"),
    )

    assert jira.fetch_todays_time(settings, today=today) == 1800
    assert transport.calls[1]["json"]["maxResults"] == 300


def test_fetch_todays_time_returns_zero_on_failure(settings, transport) -> None:
    transport.queue(FakeResponse(401, text="Unauthorized"))

    assert jira.fetch_todays_time(settings) == 0
