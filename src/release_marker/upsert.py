"""Create-or-update of the tracking issue's module-to-version map.

Each call is a read-modify-write against the parent project:
1. Locate the open tracking issue
2. Decode its body and set the module's version
3. Create the issue (none open) or rewrite its description

GitLab offers no conditional update for issues, so two release jobs that
read the same body can overwrite each other's entry. The guard closes most
of that window:
- Before writing, the issue is re-read; if its description changed since
  the locate, the attempt is dropped without writing and starts over
  (``updated_at`` is not used: new comments move it as well)
- After writing, the issue is re-read; if our entry is gone another writer
  overwrote it and the attempt starts over

Without interference exactly one write (POST or PUT) happens per call.
Replaying the same (module, version) yields the same map every time.
"""

from __future__ import annotations

from release_marker.context.gitlab import GitLabClientProtocol
from release_marker.errors import ConcurrentUpdateConflict
from release_marker.locator import IssueLocator
from release_marker.logging_config import get_logger
from release_marker.version_map import MalformedPolicy, decode, encode

logger = get_logger(__name__)


class TrackingIssueUpserter:
    """Records a module's released version on the parent tracking issue.

    Usage:
        upserter = TrackingIssueUpserter(client)
        iid = await upserter.upsert(url, "submodule_released", title, "core", "1.2.0")
    """

    def __init__(
        self,
        client: GitLabClientProtocol,
        on_malformed: MalformedPolicy = MalformedPolicy.DISCARD_AND_RESET,
        max_attempts: int = 3,
        guard: bool = True,
    ) -> None:
        """Initialize the upserter.

        Args:
            client: GitLab gateway
            on_malformed: What to do with a body that isn't a version map
            max_attempts: Read-modify-write attempts before giving up on
                          concurrent writers
            guard: Re-read the issue around the write to detect concurrent
                   writers
        """
        self.client = client
        self.locator = IssueLocator(client)
        self.on_malformed = on_malformed
        self.max_attempts = max(max_attempts, 1)
        self.guard = guard

    async def upsert(
        self,
        project_api_url: str,
        label: str,
        title: str,
        module_name: str,
        version: str,
    ) -> int:
        """Set ``module_name`` to ``version`` on the tracking issue.

        Returns:
            The iid of the created or updated tracking issue

        Raises:
            MultipleTrackingIssuesFound: If the locate step is ambiguous;
                nothing is written
            MalformedDescription: If the body is malformed and the policy
                is FAIL_FAST; nothing is written
            ConcurrentUpdateConflict: If every attempt lost a race
            httpx.HTTPError: If a GitLab call fails
        """
        for attempt in range(1, self.max_attempts + 1):
            issue = await self.locator.locate(project_api_url, label)

            if issue is None:
                version_map = decode("", self.on_malformed)
                version_map.set(module_name, version)
                created = await self.client.create_issue(
                    project_api_url,
                    title=title,
                    description=encode(version_map),
                    labels=[label],
                )
                logger.info(
                    "tracking_issue_created",
                    project=project_api_url,
                    iid=created.iid,
                    module=module_name,
                    version=version,
                )
                return created.iid

            version_map = decode(issue.description, self.on_malformed)
            version_map.set(module_name, version)
            description = encode(version_map)

            if self.guard:
                current = await self.client.get_issue(project_api_url, issue.iid)
                if current.description != issue.description:
                    logger.warning(
                        "update_conflict_detected",
                        project=project_api_url,
                        iid=issue.iid,
                        stage="before_write",
                        attempt=attempt,
                    )
                    continue

            await self.client.update_issue(
                project_api_url, issue.iid, description=description
            )

            if self.guard:
                written = await self.client.get_issue(project_api_url, issue.iid)
                recorded = decode(written.description, MalformedPolicy.DISCARD_AND_RESET)
                if recorded.get(module_name) != version:
                    logger.warning(
                        "update_conflict_detected",
                        project=project_api_url,
                        iid=issue.iid,
                        stage="after_write",
                        attempt=attempt,
                    )
                    continue

            logger.info(
                "tracking_issue_updated",
                project=project_api_url,
                iid=issue.iid,
                module=module_name,
                version=version,
                modules=len(version_map),
            )
            return issue.iid

        raise ConcurrentUpdateConflict(module_name, project_api_url, self.max_attempts)
