"""Ordered module-to-version map and its issue-body codec.

The tracking issue body is a flat YAML mapping, one ``module: version``
line per released module:

    core: 1.4.0
    web: 2.0.1

Ordering rules (kept stable so body diffs stay reviewable):
- Updating an existing module keeps its line where it is
- A module seen for the first time is appended at the end

Scalars are read with the YAML base loader, so every key and value stays a
string. ``1.10`` remains ``"1.10"`` rather than becoming the float ``1.1``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from enum import Enum

import yaml

from release_marker.errors import MalformedDescription
from release_marker.logging_config import get_logger

logger = get_logger(__name__)

# Keep long versions on one line.
_NO_LINE_WRAP = 2**31 - 1


class MalformedPolicy(str, Enum):
    """What ``decode`` does with a body that is not a flat mapping.

    DISCARD_AND_RESET: Start over from an empty map (prior entries are lost
        on the next write)
    FAIL_FAST: Raise MalformedDescription and leave the issue untouched
    """

    DISCARD_AND_RESET = "discard_and_reset"
    FAIL_FAST = "fail_fast"


class VersionMap:
    """Insertion-ordered mapping of module name to version."""

    def __init__(
        self, entries: Mapping[str, str] | Iterable[tuple[str, str]] | None = None
    ) -> None:
        self._order: list[str] = []
        self._versions: dict[str, str] = {}
        if entries is None:
            return
        pairs = entries.items() if isinstance(entries, Mapping) else entries
        for key, value in pairs:
            self.set(key, value)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._versions.get(key, default)

    def set(self, key: str, value: str) -> None:
        """Record ``value`` for ``key``.

        An existing key keeps its position; a new key goes last.
        """
        if key not in self._versions:
            self._order.append(key)
        self._versions[key] = value

    def merged(self, key: str, value: str) -> VersionMap:
        """Return a copy with ``key`` set to ``value``, leaving self untouched."""
        result = VersionMap(self.items())
        result.set(key, value)
        return result

    def keys(self) -> list[str]:
        return list(self._order)

    def items(self) -> list[tuple[str, str]]:
        return [(key, self._versions[key]) for key in self._order]

    def to_dict(self) -> dict[str, str]:
        return dict(self.items())

    def __contains__(self, key: object) -> bool:
        return key in self._versions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._order))

    def __len__(self) -> int:
        return len(self._order)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionMap):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"VersionMap({self.items()!r})"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def decode(
    body: str | None,
    on_malformed: MalformedPolicy = MalformedPolicy.DISCARD_AND_RESET,
) -> VersionMap:
    """Parse an issue body into a VersionMap.

    Args:
        body: Issue description. Blank or missing bodies yield an empty map.
        on_malformed: Recovery policy for bodies that are not a flat mapping.

    Returns:
        The parsed map, or an empty map when a malformed body is discarded.

    Raises:
        MalformedDescription: If the body is malformed and the policy is
            FAIL_FAST.
    """
    if body is None or not body.strip():
        return VersionMap()

    try:
        data = yaml.load(body, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        return _recover(body, f"invalid YAML: {exc}", on_malformed)

    if data is None:
        return VersionMap()
    if not isinstance(data, dict):
        return _recover(
            body, f"expected a mapping, got {type(data).__name__}", on_malformed
        )

    for key, value in data.items():
        if not isinstance(value, str):
            return _recover(
                body, f"value of {key!r} is not a plain version", on_malformed
            )
    return VersionMap(data.items())


def encode(version_map: VersionMap) -> str:
    """Serialize a VersionMap as ``key: value`` lines in map order.

    Entries are written plain, exactly as a person would type them, and
    quoted only when the plain line would not read back as the same
    strings (empty values, comment markers, embedded ``: `` and the like).
    An empty map encodes to an empty string.
    """
    if not version_map:
        return ""
    return "".join(_encode_entry(key, value) for key, value in version_map.items())


def _encode_entry(key: str, value: str) -> str:
    line = f"{key}: {value}\n"
    if value and _reads_back(line, key, value):
        return line
    return yaml.safe_dump(
        {key: value},
        default_flow_style=False,
        allow_unicode=True,
        width=_NO_LINE_WRAP,
    )


def _reads_back(line: str, key: str, value: str) -> bool:
    try:
        return yaml.load(line, Loader=yaml.BaseLoader) == {key: value}
    except yaml.YAMLError:
        return False


def _recover(body: str, reason: str, on_malformed: MalformedPolicy) -> VersionMap:
    if on_malformed is MalformedPolicy.FAIL_FAST:
        raise MalformedDescription(body, reason)
    logger.warning(
        "version_map_malformed",
        reason=reason,
        discarded_chars=len(body),
    )
    return VersionMap()
