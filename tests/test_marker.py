"""End-to-end tests for ParentMarker.

The first class drives the real GitLabClient through httpx.MockTransport
to check the exact request sequence; the rest use MockGitLabClient.
"""

from __future__ import annotations

import json

import httpx
import pytest

from release_marker.config import MarkerConfig, ParentFailurePolicy
from release_marker.context.gitlab import GitLabClient, MockGitLabClient
from release_marker.errors import MultipleTrackingIssuesFound
from release_marker.marker import ParentMarker, plugin_name_selector
from release_marker.schemas import ReleaseEvent

PROJECT_URL = "https://gitlab.com/api/v4/projects/1"


def release(
    version: str = "1.0.0",
    notes: str = "## 1.0.0",
    plugin_name: str = "release-marker",
    **kwargs,
) -> ReleaseEvent:
    return ReleaseEvent(plugin_name=plugin_name, version=version, notes=notes, **kwargs)


class TestAgainstGitLabApi:
    """Request sequence seen by GitLab for a first release."""

    @pytest.mark.asyncio
    async def test_first_release_creates_issue_then_note(self, config: MarkerConfig) -> None:
        requests: list[tuple[str, str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content) if request.content else {}
            requests.append((request.method, request.url.path, body))
            if request.method == "GET":
                return httpx.Response(200, json=[])
            if request.url.path.endswith("/notes"):
                return httpx.Response(201, json={"id": 1, "body": body["body"]})
            return httpx.Response(
                201, json={"iid": 1, "description": body["description"], "labels": body["labels"]}
            )

        client = GitLabClient(token="t", retry_backoff=0, transport=httpx.MockTransport(handler))
        results = await ParentMarker(client, config).mark([release()], module_name="h2s-parent")

        assert [(method, path) for method, path, _ in requests] == [
            ("GET", "/api/v4/projects/1/issues"),
            ("POST", "/api/v4/projects/1/issues"),
            ("POST", "/api/v4/projects/1/issues/1/notes"),
        ]
        assert requests[1][2] == {
            "title": config.issue_title,
            "description": "h2s-parent: 1.0.0\n",
            "labels": ["submodule_released"],
        }
        assert requests[2][2] == {"body": "## h2s-parent 1.0.0"}
        assert results[0].issue_iid == 1
        assert results[0].note_posted


class TestSelection:
    """Only releases this marker is responsible for are recorded."""

    @pytest.mark.asyncio
    async def test_other_plugins_are_ignored(
        self, gitlab: MockGitLabClient, config: MarkerConfig, captured_logs
    ) -> None:
        results = await ParentMarker(gitlab, config).mark(
            [release(plugin_name="@semantic-release/npm")], module_name="core"
        )

        assert results == []
        assert gitlab.calls == []
        assert any(log["event"] == "no_releases_to_mark" for log in captured_logs)

    @pytest.mark.asyncio
    async def test_custom_selector(self, gitlab: MockGitLabClient, config: MarkerConfig) -> None:
        marker = ParentMarker(gitlab, config, selector=lambda r: r.version.startswith("2."))

        results = await marker.mark(
            [release("1.0.0"), release("2.0.0", "## 2.0.0")], module_name="core"
        )

        assert [r.version for r in results] == ["2.0.0"]
        assert gitlab.issues[PROJECT_URL][0].description == "core: 2.0.0\n"

    def test_plugin_name_selector(self) -> None:
        select = plugin_name_selector("release-marker")
        assert select(release())
        assert not select(release(plugin_name="other"))

    @pytest.mark.asyncio
    async def test_release_module_name_wins(
        self, gitlab: MockGitLabClient, config: MarkerConfig
    ) -> None:
        await ParentMarker(gitlab, config).mark(
            [release(module_name="web")], module_name="core"
        )
        assert gitlab.issues[PROJECT_URL][0].description == "web: 1.0.0\n"

    @pytest.mark.asyncio
    async def test_missing_module_name(self, gitlab: MockGitLabClient, config: MarkerConfig) -> None:
        with pytest.raises(ValueError, match="no module name"):
            await ParentMarker(gitlab, config).mark([release()])


class TestMarking:
    """Upsert then announce."""

    @pytest.mark.asyncio
    async def test_existing_issue_gets_update_and_note(
        self, gitlab: MockGitLabClient, config: MarkerConfig
    ) -> None:
        gitlab.add_issue(PROJECT_URL, description="core: 1.0.0\n")

        results = await ParentMarker(gitlab, config).mark(
            [release("1.2.0", "## 1.2.0\n\n* fix")], module_name="web"
        )

        assert results[0].issue_iid == 1
        assert gitlab.issues[PROJECT_URL][0].description == "core: 1.0.0\nweb: 1.2.0\n"
        assert gitlab.notes[(PROJECT_URL, 1)][0].body == "## web 1.2.0\n\n* fix"

    @pytest.mark.asyncio
    async def test_blank_notes_are_not_posted(
        self, gitlab: MockGitLabClient, config: MarkerConfig
    ) -> None:
        results = await ParentMarker(gitlab, config).mark(
            [release(notes="  ")], module_name="core"
        )

        assert results[0].note_posted is False
        assert gitlab.count("POST", "/notes") == 0

    def test_requires_parent_project(self) -> None:
        with pytest.raises(ValueError, match="parent project"):
            ParentMarker(MockGitLabClient(), MarkerConfig())


class FailingNotesClient(MockGitLabClient):
    async def create_issue_note(self, project_api_url: str, iid: int, body: str):
        request = httpx.Request("POST", f"{project_api_url}/issues/{iid}/notes")
        raise httpx.HTTPStatusError(
            "500 Internal Server Error",
            request=request,
            response=httpx.Response(500, request=request),
        )


class TestFailurePolicy:
    """Failures either fail the release or are recorded, never rolled back."""

    @pytest.mark.asyncio
    async def test_note_failure_propagates_but_map_stays(self, config: MarkerConfig) -> None:
        client = FailingNotesClient()

        with pytest.raises(httpx.HTTPStatusError):
            await ParentMarker(client, config).mark([release()], module_name="core")

        assert client.issues[PROJECT_URL][0].description == "core: 1.0.0\n"

    @pytest.mark.asyncio
    async def test_best_effort_records_error(
        self, config: MarkerConfig, captured_logs
    ) -> None:
        client = FailingNotesClient()
        config.failure_policy = ParentFailurePolicy.BEST_EFFORT

        results = await ParentMarker(client, config).mark([release()], module_name="core")

        assert results[0].issue_iid == 1
        assert results[0].note_posted is False
        assert "500" in results[0].error
        assert client.issues[PROJECT_URL][0].description == "core: 1.0.0\n"
        assert any(log["event"] == "parent_marking_failed" for log in captured_logs)

    @pytest.mark.asyncio
    async def test_ambiguity_fails_release(
        self, gitlab: MockGitLabClient, config: MarkerConfig
    ) -> None:
        gitlab.add_issue(PROJECT_URL)
        gitlab.add_issue(PROJECT_URL)

        with pytest.raises(MultipleTrackingIssuesFound):
            await ParentMarker(gitlab, config).mark([release()], module_name="core")

        assert gitlab.count("POST") == 0
        assert gitlab.count("PUT") == 0

    @pytest.mark.asyncio
    async def test_best_effort_ambiguity_is_reported(
        self, gitlab: MockGitLabClient, config: MarkerConfig
    ) -> None:
        gitlab.add_issue(PROJECT_URL)
        gitlab.add_issue(PROJECT_URL)
        config.failure_policy = ParentFailurePolicy.BEST_EFFORT

        results = await ParentMarker(gitlab, config).mark([release()], module_name="core")

        assert results[0].issue_iid is None
        assert "2 open submodule release issues" in results[0].error
