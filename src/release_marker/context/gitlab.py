"""GitLab REST API gateway for tracking issues and notes.

This module is the only place that talks HTTP. It covers the four calls the
marker needs plus a single-issue read used to detect concurrent writers:
- GET  /projects/{parent}/issues             - find open tracking issues
- GET  /projects/{parent}/issues/{iid}       - re-read one issue
- POST /projects/{parent}/issues             - create the tracking issue
- PUT  /projects/{parent}/issues/{iid}       - rewrite its description
- POST /projects/{parent}/issues/{iid}/notes - append release notes

Design notes:
- Uses httpx for async HTTP requests and tenacity for the bounded retry
- Only idempotent methods (GET, PUT) are retried; a retried POST could
  create a second tracking issue or a duplicate note
- HTTP errors surface as httpx exceptions and are never wrapped
- Uses a Protocol so the marker doesn't depend on the concrete client

GitLab API docs: https://docs.gitlab.com/ee/api/issues.html
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from release_marker.logging_config import get_logger
from release_marker.schemas import IssueNote, IssueState, TrackingIssue

logger = get_logger(__name__)

RETRYABLE_METHODS = frozenset({"GET", "PUT", "HEAD", "DELETE", "OPTIONS"})
RETRYABLE_STATUS_CODES = frozenset({408, 413, 429, 500, 502, 503, 504, 521, 522, 524})

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class GitLabClientProtocol(Protocol):
    """Interface for the issue operations the marker performs.

    ``project_api_url`` is always an absolute project URL such as
    ``https://gitlab.com/api/v4/projects/group%2Fparent``.
    """

    async def list_issues(
        self,
        project_api_url: str,
        *,
        labels: str,
        state: str = "opened",
        order_by: str = "created_at",
        sort: str = "desc",
    ) -> list[TrackingIssue]:
        ...

    async def get_issue(self, project_api_url: str, iid: int) -> TrackingIssue:
        ...

    async def create_issue(
        self,
        project_api_url: str,
        *,
        title: str,
        description: str,
        labels: list[str],
    ) -> TrackingIssue:
        ...

    async def update_issue(
        self, project_api_url: str, iid: int, *, description: str
    ) -> TrackingIssue:
        ...

    async def create_issue_note(
        self, project_api_url: str, iid: int, body: str
    ) -> IssueNote:
        ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


def is_retryable(exc: BaseException) -> bool:
    """Whether a failed request is worth repeating.

    Network errors and throttling/server statuses are retried, but only for
    idempotent methods.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        request, status = exc.request, exc.response.status_code
        return request.method in RETRYABLE_METHODS and status in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.TransportError):
        try:
            method = exc.request.method
        except RuntimeError:
            return False
        return method in RETRYABLE_METHODS
    return False


class GitLabClient:
    """Real GitLab API client using httpx.

    Usage:
        client = GitLabClient(token="glpat-...", retry_limit=3)
        issues = await client.list_issues(project_url, labels="submodule_released")
    """

    def __init__(
        self,
        token: str | None = None,
        retry_limit: int = 3,
        timeout: float = 30.0,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitLab client.

        Args:
            token: Personal, project or job token sent as PRIVATE-TOKEN
            retry_limit: Retries after the first attempt for retryable failures
            timeout: Per-request timeout in seconds
            retry_backoff: Multiplier for the exponential wait between retries
            transport: Custom httpx transport (used by tests)
        """
        self._headers: dict[str, str] = {"Accept": "application/json"}
        if token:
            self._headers["PRIVATE-TOKEN"] = token
        self._retry_limit = max(retry_limit, 0)
        self._timeout = timeout
        self._retry_backoff = retry_backoff
        self._transport = transport

    async def list_issues(
        self,
        project_api_url: str,
        *,
        labels: str,
        state: str = "opened",
        order_by: str = "created_at",
        sort: str = "desc",
    ) -> list[TrackingIssue]:
        params = {"labels": labels, "state": state, "order_by": order_by, "sort": sort}
        data = await self._request("GET", _join(project_api_url, "issues"), params=params)
        return [TrackingIssue.model_validate(item) for item in data]

    async def get_issue(self, project_api_url: str, iid: int) -> TrackingIssue:
        data = await self._request("GET", _join(project_api_url, "issues", iid))
        return TrackingIssue.model_validate(data)

    async def create_issue(
        self,
        project_api_url: str,
        *,
        title: str,
        description: str,
        labels: list[str],
    ) -> TrackingIssue:
        payload = {"title": title, "description": description, "labels": labels}
        data = await self._request("POST", _join(project_api_url, "issues"), json=payload)
        return TrackingIssue.model_validate(data)

    async def update_issue(
        self, project_api_url: str, iid: int, *, description: str
    ) -> TrackingIssue:
        data = await self._request(
            "PUT",
            _join(project_api_url, "issues", iid),
            json={"description": description},
        )
        return TrackingIssue.model_validate(data)

    async def create_issue_note(
        self, project_api_url: str, iid: int, body: str
    ) -> IssueNote:
        data = await self._request(
            "POST", _join(project_api_url, "issues", iid, "notes"), json={"body": body}
        )
        return IssueNote.model_validate(data)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send one request, retrying retryable failures.

        Raises:
            httpx.HTTPStatusError: If GitLab answers with a non-2xx status
            httpx.TransportError: If the request cannot be delivered
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_limit + 1),
            wait=wait_exponential(multiplier=self._retry_backoff, max=30),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )
        async with httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            async for attempt in retrying:
                with attempt:
                    resp = await client.request(method, url, **kwargs)
                    resp.raise_for_status()
        if not resp.content:
            return {}
        return resp.json()


def _join(base: str, *parts: object) -> str:
    return "/".join([base.rstrip("/"), *(str(part).strip("/") for part in parts)])


def _log_retry(retry_state: Any) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(
        "gitlab_request_retry",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockGitLabClient:
    """In-memory GitLab stand-in that records every call.

    Use this in tests and dry runs when you don't want to hit a real
    GitLab instance. Issues are kept per project URL; ``calls`` lists
    ``(method, path)`` tuples in call order.

    Usage:
        client = MockGitLabClient()
        client.add_issue(url, description="core: 1.0.0\\n")
        await client.list_issues(url, labels="submodule_released")
    """

    def __init__(self) -> None:
        self.issues: dict[str, list[TrackingIssue]] = {}
        self.notes: dict[tuple[str, int], list[IssueNote]] = {}
        self.calls: list[tuple[str, str]] = []
        self._clock = 0

    def add_issue(
        self,
        project_api_url: str,
        *,
        description: str = "",
        labels: list[str] | None = None,
        state: IssueState = IssueState.OPENED,
        title: str = "",
    ) -> TrackingIssue:
        """Seed an issue as if someone had created it outside the marker."""
        project_issues = self.issues.setdefault(project_api_url, [])
        issue = TrackingIssue(
            iid=len(project_issues) + 1,
            id=1000 + len(project_issues),
            title=title,
            labels=labels if labels is not None else ["submodule_released"],
            state=state,
            description=description,
            updated_at=self._tick(),
        )
        project_issues.append(issue)
        return issue.model_copy()

    def count(self, method: str, suffix: str = "") -> int:
        """Number of recorded calls with ``method`` whose path ends with ``suffix``."""
        return sum(1 for m, path in self.calls if m == method and path.endswith(suffix))

    async def list_issues(
        self,
        project_api_url: str,
        *,
        labels: str,
        state: str = "opened",
        order_by: str = "created_at",
        sort: str = "desc",
    ) -> list[TrackingIssue]:
        self.calls.append(("GET", _join(project_api_url, "issues")))
        wanted = {label for label in labels.split(",") if label}
        matches = [
            issue.model_copy()
            for issue in self.issues.get(project_api_url, [])
            if issue.state.value == state and wanted.issubset(issue.labels)
        ]
        return sorted(matches, key=lambda issue: issue.iid, reverse=sort == "desc")

    async def get_issue(self, project_api_url: str, iid: int) -> TrackingIssue:
        self.calls.append(("GET", _join(project_api_url, "issues", iid)))
        return self._find(project_api_url, iid).model_copy()

    async def create_issue(
        self,
        project_api_url: str,
        *,
        title: str,
        description: str,
        labels: list[str],
    ) -> TrackingIssue:
        self.calls.append(("POST", _join(project_api_url, "issues")))
        return self.add_issue(
            project_api_url, description=description, labels=list(labels), title=title
        )

    async def update_issue(
        self, project_api_url: str, iid: int, *, description: str
    ) -> TrackingIssue:
        self.calls.append(("PUT", _join(project_api_url, "issues", iid)))
        issue = self._find(project_api_url, iid)
        issue.description = description
        issue.updated_at = self._tick()
        return issue.model_copy()

    async def create_issue_note(
        self, project_api_url: str, iid: int, body: str
    ) -> IssueNote:
        self.calls.append(("POST", _join(project_api_url, "issues", iid, "notes")))
        issue = self._find(project_api_url, iid)
        issue.updated_at = self._tick()
        notes = self.notes.setdefault((project_api_url, iid), [])
        note = IssueNote(id=len(notes) + 1, body=body)
        notes.append(note)
        return note

    def _find(self, project_api_url: str, iid: int) -> TrackingIssue:
        for issue in self.issues.get(project_api_url, []):
            if issue.iid == iid:
                return issue
        request = httpx.Request("GET", _join(project_api_url, "issues", iid))
        raise httpx.HTTPStatusError(
            f"404 Issue Not Found: {request.url}",
            request=request,
            response=httpx.Response(404, request=request),
        )

    def _tick(self) -> str:
        # Distinct, increasing markers without depending on wall-clock resolution.
        self._clock += 1
        return datetime.fromtimestamp(self._clock, tz=UTC).isoformat()
