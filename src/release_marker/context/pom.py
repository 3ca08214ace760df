"""Resolve the released module's name from its Maven descriptor.

The module name recorded on the tracking issue is the project's
``artifactId``. Projects without a readable ``pom.xml`` fall back to the
last segment of their repository path (``group/sub/my-module`` ->
``my-module``).
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from release_marker.logging_config import get_logger

logger = get_logger(__name__)


def read_artifact_id(pom_file: str | Path) -> str | None:
    """Return the top-level ``<artifactId>`` of a pom, or None if absent.

    Raises:
        OSError: If the file cannot be read
        xml.etree.ElementTree.ParseError: If the file is not valid XML
    """
    root = ET.parse(pom_file).getroot()
    # Maven poms normally declare the POM 4.0.0 namespace on <project>.
    namespace = root.tag[: root.tag.index("}") + 1] if root.tag.startswith("{") else ""
    element = root.find(f"{namespace}artifactId")
    if element is None or not (element.text or "").strip():
        return None
    return element.text.strip()


def resolve_module_name(
    pom_path: str | Path,
    project_path: str | None,
    cwd: str | Path | None = None,
) -> str | None:
    """Resolve the module name for the release being marked.

    Args:
        pom_path: Path to pom.xml, relative to ``cwd``
        project_path: Repository path such as ``group/my-module``
        cwd: Directory ``pom_path`` is relative to (defaults to the
             current working directory)

    Returns:
        The pom's artifactId, else the last segment of ``project_path``,
        else None when neither is available.
    """
    pom_file = Path(cwd or Path.cwd()) / pom_path
    try:
        artifact_id = read_artifact_id(pom_file)
    except (OSError, ET.ParseError) as exc:
        logger.debug("pom_unreadable", pom_file=str(pom_file), error=str(exc))
        artifact_id = None

    if artifact_id:
        return artifact_id
    if project_path:
        return project_path.rstrip("/").split("/")[-1] or None
    return None
