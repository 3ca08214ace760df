"""Error taxonomy for parent marking.

Transport failures are not represented here: they are raised by httpx
(``httpx.HTTPStatusError``, ``httpx.TransportError``) and propagate to the
caller unchanged.
"""

from __future__ import annotations


class MarkParentError(Exception):
    """Base class for errors raised while marking a parent project.

    Attributes:
        message: Short description of what went wrong
        code: Stable machine-readable identifier
        details: User-actionable explanation
    """

    code = "MARK_PARENT_ERROR"

    def __init__(self, message: str, details: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n{self.details}"
        return self.message


class MultipleTrackingIssuesFound(MarkParentError):
    """More than one open tracking issue carries the release label.

    Retrying cannot help: a human has to close the duplicates first.
    """

    code = "FOUND_MULTIPLE_SUBMODULE_RELEASED_ISSUES"

    def __init__(self, count: int, project_url: str) -> None:
        self.count = count
        self.project_url = project_url
        super().__init__(
            "More than one submodule release issue exists in the parent project.",
            f"The parent project ({project_url}) has {count} open submodule "
            "release issues. Keep the latest one, close the others and retry.",
        )


class MalformedDescription(MarkParentError):
    """The tracking issue body is not a module-to-version mapping."""

    code = "MALFORMED_TRACKING_ISSUE_DESCRIPTION"

    def __init__(self, body: str, reason: str = "") -> None:
        self.body = body
        super().__init__(
            "The tracking issue description is not a module: version mapping.",
            reason,
        )


class ConcurrentUpdateConflict(MarkParentError):
    """Concurrent writers kept changing the tracking issue under us."""

    code = "TRACKING_ISSUE_UPDATE_CONFLICT"

    def __init__(self, module_name: str, project_url: str, attempts: int) -> None:
        self.module_name = module_name
        self.project_url = project_url
        self.attempts = attempts
        super().__init__(
            f"Could not record {module_name} on the tracking issue.",
            f"The tracking issue in {project_url} was modified concurrently "
            f"on each of {attempts} attempts. Re-run the release job.",
        )
