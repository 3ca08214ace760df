"""Command line entry point.

Usage:
    release-marker --releases releases.json --module-name core
    semantic-release-output | release-marker --releases -

The releases file is a JSON array of release events as produced by the
release pipeline, e.g.:

    [{"pluginName": "release-marker", "version": "1.2.0", "notes": "## 1.2.0"}]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import httpx
from pydantic import TypeAdapter, ValidationError

from release_marker.config import MarkerConfig, load_marker_config
from release_marker.context.gitlab import GitLabClient
from release_marker.context.pom import resolve_module_name
from release_marker.errors import MarkParentError
from release_marker.logging_config import get_logger, setup_logging
from release_marker.marker import ParentMarker
from release_marker.schemas import MarkResult, ReleaseEvent

logger = get_logger(__name__)

_releases_adapter = TypeAdapter(list[ReleaseEvent])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="release-marker",
        description="Record submodule releases on the parent project's tracking issue",
    )
    parser.add_argument(
        "--releases", "-r",
        required=True,
        help="JSON file with the release events ('-' reads stdin)",
    )
    parser.add_argument(
        "--module-name", "-m",
        help="Module name to record (defaults to the pom artifactId)",
    )
    parser.add_argument(
        "--config", "-c",
        default=".release-marker.yml",
        help="YAML options file (default: .release-marker.yml, optional)",
    )
    return parser


async def run(
    config: MarkerConfig,
    releases: list[ReleaseEvent],
    module_name: str | None,
) -> list[MarkResult]:
    client = GitLabClient(
        token=config.gitlab_token,
        retry_limit=config.retry_limit,
        timeout=config.timeout,
    )
    marker = ParentMarker(client, config)
    return await marker.mark(releases, module_name)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for marking releases from a CI job."""
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        config = load_marker_config(args.config)
        if args.releases == "-":
            data = json.load(sys.stdin)
        else:
            with open(args.releases) as f:
                data = json.load(f)
        releases = _releases_adapter.validate_python(data)
    except (OSError, ValueError, ValidationError) as e:
        print(f"release-marker: {e}", file=sys.stderr)
        sys.exit(2)

    if config.parent_project_api_url is None:
        logger.info("parent_marking_disabled")
        print("[]")
        return

    module_name = args.module_name or resolve_module_name(config.pom_path, config.project_path)

    try:
        results = asyncio.run(run(config, releases, module_name))
    except (MarkParentError, httpx.HTTPError, ValueError) as e:
        print(f"release-marker: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps([result.model_dump() for result in results], indent=2))


if __name__ == "__main__":
    main()
