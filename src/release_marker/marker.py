"""Mark released submodules on the parent project.

This module ties the pieces together for one release pipeline run:
- Release selection (which events this marker is responsible for)
- TrackingIssueUpserter (upsert.py) records module -> version
- ReleaseAnnouncer (announcer.py) appends the release notes

For each selected release the version map is written first and the notes
second. A failed announcement never rolls back the map: the map is the
source of truth, the notes are an audit trail.

Whether a failure here fails the module's own release is a configuration
choice (``ParentFailurePolicy``).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from release_marker.announcer import ReleaseAnnouncer
from release_marker.config import MarkerConfig, ParentFailurePolicy
from release_marker.context.gitlab import GitLabClientProtocol
from release_marker.logging_config import get_logger
from release_marker.schemas import MarkResult, ReleaseEvent
from release_marker.upsert import TrackingIssueUpserter

logger = get_logger(__name__)

ReleaseSelector = Callable[[ReleaseEvent], bool]


def plugin_name_selector(plugin_name: str) -> ReleaseSelector:
    """Select releases produced by the named pipeline plugin."""

    def select(release: ReleaseEvent) -> bool:
        return release.plugin_name == plugin_name

    return select


class ParentMarker:
    """Records releases on the parent project's tracking issue.

    Usage:
        marker = ParentMarker(GitLabClient(token=...), config)
        results = await marker.mark(releases, module_name="core")
    """

    def __init__(
        self,
        client: GitLabClientProtocol,
        config: MarkerConfig,
        selector: ReleaseSelector | None = None,
    ) -> None:
        """Initialize the marker.

        Args:
            client: GitLab gateway
            config: Resolved marker settings; must name a parent project
            selector: Decides which releases belong to this module.
                      Defaults to matching ``config.plugin_name``.
        """
        if config.parent_project_api_url is None:
            raise ValueError("ParentMarker needs a parent project (parent_id_or_path)")
        self.config = config
        self.project_api_url = config.parent_project_api_url
        self.selector = selector or plugin_name_selector(config.plugin_name)
        self.upserter = TrackingIssueUpserter(
            client,
            on_malformed=config.on_malformed,
            max_attempts=config.max_upsert_attempts,
        )
        self.announcer = ReleaseAnnouncer(client)

    async def mark(
        self,
        releases: Iterable[ReleaseEvent],
        module_name: str | None = None,
    ) -> list[MarkResult]:
        """Record every selected release on the tracking issue.

        Args:
            releases: Releases produced by this pipeline run
            module_name: Module to record for releases that don't name one

        Returns:
            One MarkResult per selected release, in order

        Raises:
            ValueError: If a selected release has no module name at all
            MarkParentError, httpx.HTTPError: On failure, unless the
                failure policy is BEST_EFFORT
        """
        selected = [release for release in releases if self.selector(release)]
        if not selected:
            logger.info("no_releases_to_mark", project=self.project_api_url)
            return []

        results = []
        for release in selected:
            name = release.module_name or module_name
            if not name:
                raise ValueError(
                    f"Cannot mark release {release.version}: no module name given"
                )
            results.append(await self._mark_one(release, name))
        return results

    async def _mark_one(self, release: ReleaseEvent, module_name: str) -> MarkResult:
        result = MarkResult(module_name=module_name, version=release.version)
        logger.info(
            "marking_parent",
            project=self.project_api_url,
            module=module_name,
            version=release.version,
        )

        try:
            result.issue_iid = await self.upserter.upsert(
                self.project_api_url,
                self.config.label,
                self.config.issue_title,
                module_name,
                release.version,
            )
            if release.notes.strip():
                await self.announcer.announce(
                    self.project_api_url, result.issue_iid, module_name, release.notes
                )
                result.note_posted = True
            else:
                logger.info("release_notes_empty", module=module_name)
        except Exception as e:
            logger.error(
                "parent_marking_failed",
                project=self.project_api_url,
                module=module_name,
                version=release.version,
                issue_iid=result.issue_iid,
                error=str(e),
                exc_info=True,
            )
            if self.config.failure_policy is ParentFailurePolicy.FAIL_RELEASE:
                raise
            result.error = str(e)

        return result
