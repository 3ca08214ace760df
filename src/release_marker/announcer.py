"""Append release notes to the tracking issue as comments.

Notes are an audit trail, not state: they are never edited or
de-duplicated, so re-running a partially failed release can post the same
notes twice.
"""

from __future__ import annotations

from release_marker.context.gitlab import GitLabClientProtocol
from release_marker.logging_config import get_logger
from release_marker.schemas import IssueNote

logger = get_logger(__name__)


def format_release_note(module_name: str, notes: str) -> str:
    """Put the module name into the notes' heading.

    ``"## 1.2.0 (2024-05-01)"`` becomes ``"## core 1.2.0 (2024-05-01)"``.
    Notes that don't open with a level-2 heading get one naming the module.
    """
    if notes.startswith("## "):
        return f"## {module_name} {notes[3:]}"
    return f"## {module_name}\n\n{notes}"


class ReleaseAnnouncer:
    """Posts one comment per processed release on the tracking issue."""

    def __init__(self, client: GitLabClientProtocol) -> None:
        self.client = client

    async def announce(
        self,
        project_api_url: str,
        issue_iid: int,
        module_name: str,
        notes: str,
    ) -> IssueNote:
        body = format_release_note(module_name, notes)
        note = await self.client.create_issue_note(project_api_url, issue_iid, body)
        logger.info(
            "release_note_posted",
            project=project_api_url,
            iid=issue_iid,
            module=module_name,
        )
        return note
