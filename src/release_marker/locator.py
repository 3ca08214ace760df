"""Find the single open tracking issue of a parent project."""

from __future__ import annotations

from release_marker.context.gitlab import GitLabClientProtocol
from release_marker.errors import MultipleTrackingIssuesFound
from release_marker.logging_config import get_logger
from release_marker.schemas import TrackingIssue

logger = get_logger(__name__)


class IssueLocator:
    """Looks up the open issue carrying the tracking label.

    At most one such issue may be open per parent project. Seeing more than
    one is fatal and is not retried.
    """

    def __init__(self, client: GitLabClientProtocol) -> None:
        self.client = client

    async def locate(self, project_api_url: str, label: str) -> TrackingIssue | None:
        """Return the open tracking issue, or None if there is none.

        Issues are requested newest first with a single query.

        Raises:
            MultipleTrackingIssuesFound: If two or more open issues carry
                ``label``
        """
        issues = await self.client.list_issues(
            project_api_url,
            labels=label,
            state="opened",
            order_by="created_at",
            sort="desc",
        )
        logger.info(
            "tracking_issues_listed",
            project=project_api_url,
            label=label,
            count=len(issues),
        )

        if len(issues) > 1:
            raise MultipleTrackingIssuesFound(len(issues), project_api_url)
        if not issues:
            return None
        return issues[0]
