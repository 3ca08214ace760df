"""Shared fixtures.

Every test runs with structlog capturing events instead of printing them,
so log output never mixes with CLI stdout and tests can assert on events.
"""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from release_marker.config import MarkerConfig
from release_marker.context.gitlab import MockGitLabClient


@pytest.fixture(autouse=True)
def captured_logs():
    with capture_logs() as logs:
        yield logs


@pytest.fixture
def gitlab() -> MockGitLabClient:
    return MockGitLabClient()


@pytest.fixture
def config() -> MarkerConfig:
    return MarkerConfig(
        gitlab_api_url="https://gitlab.com/api/v4",
        parent_id_or_path="1",
        plugin_name="release-marker",
    )
