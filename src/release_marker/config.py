"""Configuration for the release marker.

Settings come from three places, first match wins:
1. Explicit options (CLI flags or a YAML options file)
2. Environment variables set by the CI job (GL_TOKEN, CI_PARENT_ID_OR_PATH, ...)
3. Defaults

Parent marking is enabled only when a parent project is configured.

Example options file:

    parent_id_or_path: group/platform
    label: submodule_released
    on_malformed: fail_fast
    failure_policy: best_effort
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import quote

import yaml
from pydantic import BaseModel, Field, ValidationError

from release_marker.version_map import MalformedPolicy

DEFAULT_GITLAB_URL = "https://gitlab.com"
DEFAULT_API_PREFIX = "/api/v4"
DEFAULT_RETRY_LIMIT = 3


class ParentFailurePolicy(str, Enum):
    """Whether a failed parent marking fails the module's own release.

    FAIL_RELEASE: Errors propagate to the release pipeline
    BEST_EFFORT: Errors are logged and recorded, the release goes on
    """

    FAIL_RELEASE = "fail_release"
    BEST_EFFORT = "best_effort"


class MarkerConfig(BaseModel):
    """Resolved settings for one marker run."""

    gitlab_token: str | None = Field(None, description="GitLab API token")
    gitlab_url: str = Field(DEFAULT_GITLAB_URL, description="GitLab server URL")
    gitlab_api_url: str = Field(
        DEFAULT_GITLAB_URL + DEFAULT_API_PREFIX, description="GitLab REST API root"
    )
    retry_limit: int = Field(DEFAULT_RETRY_LIMIT, ge=0, description="HTTP retries")
    timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")
    parent_id_or_path: str | None = Field(
        None, description="Parent project id or path; None disables marking"
    )
    project_path: str | None = Field(None, description="Path of the released project")
    pom_path: str = Field("pom.xml", description="pom.xml location")
    label: str = Field("submodule_released", min_length=1)
    issue_title: str = Field("Deployment request for released submodules", min_length=1)
    plugin_name: str = Field("release-marker", description="Releases to mark")
    on_malformed: MalformedPolicy = MalformedPolicy.DISCARD_AND_RESET
    failure_policy: ParentFailurePolicy = ParentFailurePolicy.FAIL_RELEASE
    max_upsert_attempts: int = Field(3, ge=1)

    @property
    def parent_project_api_url(self) -> str | None:
        """API URL of the parent project, or None when marking is disabled."""
        if not self.parent_id_or_path:
            return None
        encoded = quote(str(self.parent_id_or_path), safe="")
        return f"{self.gitlab_api_url.rstrip('/')}/projects/{encoded}"


def resolve_config(
    options: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    ci_service: str | None = None,
) -> MarkerConfig:
    """Combine options, environment and defaults into a MarkerConfig.

    Args:
        options: Explicit settings keyed by MarkerConfig field name, plus
                 ``gitlab_api_path_prefix``
        env: Environment variables (defaults to os.environ)
        ci_service: CI provider name; "gitlab" enables CI_* URL detection.
                    Detected from GITLAB_CI when not given.

    Raises:
        ValueError: If the combined settings fail validation
    """
    opts = {key: value for key, value in (options or {}).items() if value is not None}
    env = os.environ if env is None else env
    if ci_service is None and env.get("GITLAB_CI"):
        ci_service = "gitlab"
    on_gitlab_ci = ci_service == "gitlab"

    prefix = _first(opts.pop("gitlab_api_path_prefix", None), env.get("GL_PREFIX"), env.get("GITLAB_PREFIX"))
    user_url = _first(opts.get("gitlab_url"), env.get("GL_URL"), env.get("GITLAB_URL"))

    gitlab_url = user_url
    if not gitlab_url and on_gitlab_ci and env.get("CI_PROJECT_URL") and env.get("CI_PROJECT_PATH"):
        project_path = re.escape(env["CI_PROJECT_PATH"])
        gitlab_url = re.sub(f"/{project_path}$", "", env["CI_PROJECT_URL"])
    gitlab_url = gitlab_url or DEFAULT_GITLAB_URL

    if user_url and prefix is not None:
        api_url = _url_join(user_url, prefix)
    elif on_gitlab_ci and env.get("CI_API_V4_URL"):
        api_url = env["CI_API_V4_URL"]
    else:
        api_url = _url_join(gitlab_url, DEFAULT_API_PREFIX if prefix is None else prefix)

    parent = _first(opts.get("parent_id_or_path"), env.get("CI_PARENT_ID_OR_PATH"))

    resolved = {
        **opts,
        "gitlab_token": _first(opts.get("gitlab_token"), env.get("GL_TOKEN"), env.get("GITLAB_TOKEN")),
        "gitlab_url": gitlab_url,
        "gitlab_api_url": opts.get("gitlab_api_url", api_url),
        "parent_id_or_path": None if parent is None else str(parent),
        "project_path": _first(opts.get("project_path"), env.get("CI_PROJECT_PATH")),
        "pom_path": _first(opts.get("pom_path"), env.get("CI_POM_PATH"), "pom.xml"),
    }

    try:
        return MarkerConfig.model_validate(resolved)
    except ValidationError as exc:
        raise ValueError(f"Invalid release marker configuration: {exc}") from exc


def load_marker_config(
    path: str | Path | None,
    env: Mapping[str, str] | None = None,
) -> MarkerConfig:
    """Load options from a YAML file and resolve them against the environment.

    A missing file (or no path) means "no options": environment and
    defaults still apply.

    Raises:
        ValueError: If the YAML is invalid or the settings fail validation
    """
    options: dict[str, Any] = {}
    if path is not None and Path(path).exists():
        try:
            raw = yaml.safe_load(Path(path).read_text()) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ValueError(f"Expected a mapping of options in {path}")
        options = raw
    return resolve_config(options, env)


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _url_join(base: str, path: str) -> str:
    if not path:
        return base.rstrip("/")
    return f"{base.rstrip('/')}/{path.strip('/')}"
