import base64
import logging
from dataclasses import dataclass
from datetime import date, datetime

import requests

from .config import split_filter
from .duration import WorklogDuration
from .errors import ConfigError, JiraApiError, PermissionCheckFailed, SubmissionFailed

logger = logging.getLogger(__name__)

API_PATH = "rest/api/3"
REQUEST_TIMEOUT = 30
MAX_RESULTS = 50
SEARCH_FIELDS = ["summary", "timespent", "issuetype", "status"]
DONE_LOOKBACK = "-7d"
TODAY_SEARCH_LOOKBACK = "-30d"
TODAY_SEARCH_MAX_RESULTS = 300

STATUS_NEW_COLOR = "#94A3B8"
STATUS_IN_PROGRESS_COLOR = "#F59E0B"
STATUS_DONE_COLOR = "#22C55E"
STATUS_CATEGORY_COLORS = {
    "new": STATUS_NEW_COLOR,
    "indeterminate": STATUS_IN_PROGRESS_COLOR,
    "done": STATUS_DONE_COLOR,
}
INACTIVE_STATUSES = ('Done', 'Canceled', 'Cancelled', 'Closed', 'To Do', 'New', 'Open')


@dataclass(frozen=True)
class IssueType:
    name: str
    icon_url: str = ""


@dataclass(frozen=True)
class TicketStatus:
    name: str
    category_color: str = STATUS_NEW_COLOR
    category_key: str = ""


@dataclass(frozen=True)
class Ticket:
    id: str
    key: str
    summary: str
    time_spent_seconds: int
    issue_type: IssueType
    status: TicketStatus


@dataclass(frozen=True)
class TicketSection:
    name: str
    tickets: tuple = ()
    error: str = None


def status_color(category_key):
    return STATUS_CATEGORY_COLORS.get(category_key or "", STATUS_NEW_COLOR)


def auth_header(settings):
    if settings.jira_username:
        token = base64.b64encode(f"{settings.jira_username}:{settings.jira_api_token}".encode('utf-8'))
        return f"Basic {token.decode('ascii')}"
    return f"Bearer {settings.jira_api_token}"


def _headers(settings):
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": auth_header(settings),
    }


def adf_document(text):
    return {"type": "doc", "version": 1,
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}]}


def _make_jira_request(settings, method, endpoint, **kwargs):
    if not settings.is_configured():
        raise ConfigError("Jira server address and API token must be configured.")

    url = f"{settings.jira_server}/{API_PATH}/{endpoint}"
    log_data_summary = " with JSON data" if 'json' in kwargs else ""
    logger.debug("--> JIRA_API: %s %s%s", method, url, log_data_summary)

    try:
        response = requests.request(
            method, url,
            headers=_headers(settings),
            timeout=REQUEST_TIMEOUT,
            **kwargs
        )
    except requests.exceptions.ConnectionError as conn_err:
        err_msg = f"!! Connection Error for {method} {url}: {conn_err}"
        logger.error("[API ERROR] %s", err_msg)
        return {'success': False, 'error': err_msg, 'status_code': None, 'raw_response': ""}
    except requests.exceptions.Timeout as timeout_err:
        err_msg = f"!! Timeout Error for {method} {url}: {timeout_err}"
        logger.error("[API ERROR] %s", err_msg)
        return {'success': False, 'error': err_msg, 'status_code': None, 'raw_response': ""}
    except requests.exceptions.RequestException as req_err:
        err_msg = f"!! Request Exception for {method} {url}: {req_err}"
        logger.exception("[API ERROR] %s", err_msg)
        return {'success': False, 'error': err_msg, 'status_code': None, 'raw_response': ""}

    if not 200 <= response.status_code < 300:
        response_text = response.text or ""
        error_message = f"!! HTTP Error {response.status_code} for {method} {url}"
        try:
            error_json = response.json()
            jira_error_messages = error_json.get('errorMessages', [])
            jira_errors = error_json.get('errors', {})
            if jira_error_messages: error_message += f"\nJira Messages: {jira_error_messages}"
            if jira_errors: error_message += f"\nJira Details: {jira_errors}"
        except (ValueError, AttributeError):
            pass
        logger.error("[API ERROR] %s\nResponse Body: %s", error_message, response_text[:500])
        return {'success': False, 'error': error_message, 'status_code': response.status_code,
                'raw_response': response_text}

    if response.status_code == 204 or not response.content:
        logger.debug("<-- JIRA_API: %s NO_CONTENT", response.status_code)
        return {'success': True, 'status_code': response.status_code, 'data': None}

    try:
        data = response.json()
    except ValueError:
        logger.warning("<-- JIRA_API: %s OK (Non-JSON): %s...", response.status_code, response.text[:100])
        return {'success': True, 'status_code': response.status_code, 'raw_response': response.text}

    logger.debug("<-- JIRA_API: %s OK (JSON)", response.status_code)
    return {'success': True, 'status_code': response.status_code, 'data': data}


def _raise_for_result(result, error_cls=JiraApiError):
    if not result['success']:
        body = result.get('raw_response') or result.get('error', '')
        raise error_cls(result.get('status_code'), body)
    return result.get('data')


def validate_connection(settings):
    try:
        result = _make_jira_request(settings, "GET", "myself")
    except ConfigError:
        return False
    return result['success']


def fetch_myself(settings):
    return _raise_for_result(_make_jira_request(settings, "GET", "myself")) or {}


def _ticket_from_issue(issue):
    flds = issue.get('fields') or {}
    issue_type = flds.get('issuetype') or {}
    status = flds.get('status') or {}
    category_key = (status.get('statusCategory') or {}).get('key', "")
    return Ticket(
        id=str(issue.get('id', "")),
        key=issue.get('key', ""),
        summary=flds.get('summary') or "",
        time_spent_seconds=int(flds.get('timespent') or 0),
        issue_type=IssueType(
            name=issue_type.get('name') or "Unknown",
            icon_url=issue_type.get('iconUrl') or "",
        ),
        status=TicketStatus(
            name=status.get('name') or "Unknown",
            category_color=status_color(category_key),
            category_key=category_key,
        ),
    )


def search(settings, jql):
    body = {"jql": jql, "fields": SEARCH_FIELDS, "maxResults": MAX_RESULTS}
    logger.info("Searching tickets: %s", jql)
    data = _raise_for_result(_make_jira_request(settings, "POST", "search/jql", json=body)) or {}
    tickets = [_ticket_from_issue(issue) for issue in data.get('issues', [])]
    logger.info("Found %d tickets.", len(tickets))
    return tickets


def _quoted_list(values):
    return ", ".join(f'"{value}"' for value in values)


def build_in_progress_jql(settings):
    jql = "assignee = currentUser()"

    statuses = split_filter(settings.filter_statuses)
    if statuses:
        jql += f" AND status in ({_quoted_list(statuses)})"
    else:
        defaults = ", ".join(f"'{status}'" for status in INACTIVE_STATUSES)
        jql += f" AND status not in ({defaults})"

    issue_types = split_filter(settings.filter_issue_types)
    if issue_types:
        jql += f" AND issuetype in ({_quoted_list(issue_types)})"

    return jql + " ORDER BY updated DESC"


def fetch_in_progress(settings):
    return search(settings, build_in_progress_jql(settings))


def fetch_done(settings):
    jql = f"status = 'Done' AND assignee = currentUser() AND updated >= {DONE_LOOKBACK} ORDER BY updated DESC"
    return search(settings, jql)


def fetch_by_keys(settings, keys):
    keys = [key for key in keys if key]
    if not keys:
        return []
    return search(settings, f"key in ({','.join(keys)})")


def fetch_pinned(settings):
    return fetch_by_keys(settings, settings.pinned_ticket_keys)


def fetch_sections(settings, show_done=False):
    """Fetch the pinned, in-progress and (optionally) done lists.

    Each list is fetched on its own so that one rejected query, such as a
    pinned key that no longer exists, only empties its own section.
    """
    fetchers = [("pinned", fetch_pinned), ("in_progress", fetch_in_progress)]
    if show_done:
        fetchers.append(("done", fetch_done))

    sections = []
    for name, fetch in fetchers:
        try:
            sections.append(TicketSection(name, tuple(fetch(settings))))
        except JiraApiError as e:
            logger.error("!! Could not load %s tickets: %s", name, e)
            sections.append(TicketSection(name, error=str(e)))
    return sections


def submit_worklog(settings, ticket_id, duration, comment=None):
    duration = WorklogDuration.of(duration)
    worklog_data = duration.to_payload()
    if comment:
        worklog_data["comment"] = adf_document(comment)

    logger.info("Logging work for ticket %s: %s", ticket_id, duration)
    result = _make_jira_request(settings, "POST", f"issue/{ticket_id}/worklog", json=worklog_data)
    data = _raise_for_result(result, SubmissionFailed)
    logger.info(">> Successfully logged work (%s) for %s.", duration, ticket_id)
    return data or {}


def check_permission(settings, ticket_key):
    endpoint = f"mypermissions?issueKey={ticket_key}&permissions=WORK_ON_ISSUES"
    result = _make_jira_request(settings, "GET", endpoint)

    if not result['success']:
        if result.get('status_code') is None:
            raise PermissionCheckFailed(ticket_key, result.get('error', 'no response'))
        logger.warning("Permission check for %s returned HTTP %s.", ticket_key, result['status_code'])
        return False

    data = result.get('data')
    if not isinstance(data, dict):
        raise PermissionCheckFailed(ticket_key, "unexpected response body")

    permission = (data.get('permissions') or {}).get('WORK_ON_ISSUES') or {}
    has_permission = permission.get('havePermission') is True
    logger.info("Permission check for %s: %s", ticket_key, has_permission)
    return has_permission


def _worklog_date(started):
    # "2026-01-14T08:00:00.000+0100" -> 2026-01-14, in the worklog's own offset
    try:
        return datetime.strptime(started.split('T')[0], "%Y-%m-%d").date()
    except (AttributeError, ValueError):
        return None


def fetch_todays_time(settings, today=None):
    today = today or date.today()
    try:
        account_id = fetch_myself(settings).get('accountId')
        body = {"jql": f"updated >= {TODAY_SEARCH_LOOKBACK} ORDER BY updated DESC",
                "fields": ["key"], "maxResults": TODAY_SEARCH_MAX_RESULTS}
        data = _raise_for_result(_make_jira_request(settings, "POST", "search/jql", json=body)) or {}
        issue_keys = [issue['key'] for issue in data.get('issues', []) if issue.get('key')]

        total_seconds = 0
        for key in issue_keys:
            result = _make_jira_request(settings, "GET", f"issue/{key}/worklog")
            if not result['success']:
                continue
            for wl in (result.get('data') or {}).get('worklogs', []):
                is_mine = (wl.get('author') or {}).get('accountId') == account_id
                if is_mine and _worklog_date(wl.get('started')) == today:
                    total_seconds += int(wl.get('timeSpentSeconds') or 0)
    except (JiraApiError, ConfigError) as e:
        logger.warning("Failed to fetch today's time: %s", e)
        return 0

    logger.info("Time logged today: %ss across %d tickets.", total_seconds, len(issue_keys))
    return total_seconds


__all__ = [
    "IssueType",
    "Ticket",
    "TicketSection",
    "TicketStatus",
    "auth_header",
    "build_in_progress_jql",
    "check_permission",
    "fetch_by_keys",
    "fetch_done",
    "fetch_in_progress",
    "fetch_myself",
    "fetch_pinned",
    "fetch_sections",
    "fetch_todays_time",
    "search",
    "status_color",
    "submit_worklog",
    "validate_connection",
]
