"""Pydantic models for the data exchanged with GitLab and the release pipeline.

Key design decisions:
- GitLab payloads are parsed leniently: unknown fields are ignored and a
  ``null`` description is read as an empty body
- Release events are ephemeral; nothing here is persisted locally
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class IssueState(str, Enum):
    """GitLab issue state as reported by the REST API."""

    OPENED = "opened"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# GitLab Schemas
# ---------------------------------------------------------------------------


class TrackingIssue(BaseModel):
    """A release request issue in the parent project.

    Attributes:
        iid: Project-scoped issue number used in API paths
        id: Instance-wide issue id
        title: Issue title
        labels: Labels carried by the issue
        state: Open or closed
        description: Issue body holding the encoded version map
        updated_at: Last-modified marker used to detect concurrent writes
    """

    iid: int = Field(..., description="Project-scoped issue number")
    id: int | None = Field(None, description="Instance-wide issue id")
    title: str = Field("", description="Issue title")
    labels: list[str] = Field(default_factory=list, description="Issue labels")
    state: IssueState = Field(IssueState.OPENED, description="Issue state")
    description: str = Field("", description="Issue body (encoded version map)")
    updated_at: str | None = Field(None, description="Last-modified marker")

    @field_validator("description", mode="before")
    @classmethod
    def null_description_is_empty(cls, value: object) -> object:
        return "" if value is None else value


class IssueNote(BaseModel):
    """A comment on an issue."""

    id: int | None = None
    body: str = ""


# ---------------------------------------------------------------------------
# Release Pipeline Schemas
# ---------------------------------------------------------------------------


class ReleaseEvent(BaseModel):
    """One release produced by the surrounding release pipeline.

    Attributes:
        plugin_name: Name of the pipeline plugin that produced the release
        name: Display name of the release
        module_name: Module released; resolved from the pom when omitted
        version: Released version
        notes: Release notes in Markdown

    Accepts both snake_case and the camelCase keys emitted by JavaScript
    release pipelines (``pluginName``, ``moduleName``).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plugin_name: str = Field("", description="Plugin that produced the release")
    name: str | None = Field(None, description="Release display name")
    module_name: str | None = Field(None, description="Released module")
    version: str = Field(..., min_length=1, description="Released version")
    notes: str = Field("", description="Markdown release notes")

    @field_validator("notes", mode="before")
    @classmethod
    def null_notes_are_empty(cls, value: object) -> object:
        return "" if value is None else value


class MarkResult(BaseModel):
    """Outcome of marking one release on the parent project.

    Attributes:
        module_name: Module recorded on the tracking issue
        version: Version recorded for the module
        issue_iid: Tracking issue the release was recorded on, if any
        note_posted: Whether the release notes were appended as a comment
        error: Error message when a best-effort marking failed
    """

    module_name: str
    version: str
    issue_iid: int | None = None
    note_posted: bool = False
    error: str | None = None
