"""
Per-call reference tracking.

A ReferenceTracker lives for exactly one marshal or unmarshal call. While
marshalling it maps object identity (id()) to the structural path of the
node where the object was first written, and remembers which objects are
still being written so a true cycle can be told apart from a repeated but
finished object. While unmarshalling it maps those same paths back to the
objects constructed for them.

Paths are built by a PathTracker from the node names as they are opened:

    /list/farm/animal[2]

A segment carries a 1-based [n] qualifier when it is not the first sibling
of that name. The first sibling is written without a qualifier, so
"animal" and "animal[1]" denote the same node.
"""

from __future__ import annotations

import enum
import re
from collections import Counter
from dataclasses import dataclass

from arbor.errors import InvalidReferenceError

_SEGMENT = re.compile(r"^(?P<name>[^\[\]]+)(?:\[(?P<index>\d+)\])?$")


# =============================================================================
# Paths
# =============================================================================


class PathTracker:
    """
    Follows the current position of a writer or reader in the document.

    Example:
        >>> tracker = PathTracker()
        >>> tracker.push("list"); tracker.push("animal"); tracker.pop()
        >>> tracker.push("animal"); tracker.path
        '/list/animal[2]'
    """

    def __init__(self):
        self._segments: list[str] = []
        self._siblings: list[Counter] = [Counter()]

    def push(self, name: str) -> None:
        counter = self._siblings[-1]
        counter[name] += 1
        count = counter[name]
        self._segments.append(name if count == 1 else f"{name}[{count}]")
        self._siblings.append(Counter())

    def pop(self) -> None:
        self._segments.pop()
        self._siblings.pop()

    @property
    def depth(self) -> int:
        return len(self._segments)

    @property
    def path(self) -> str:
        return "/" + "/".join(self._segments)


def _split(path: str) -> list[str]:
    return [_normalize_segment(part) for part in path.split("/") if part]


def _normalize_segment(segment: str) -> str:
    if segment in ("..", "."):
        return segment
    match = _SEGMENT.match(segment)
    if match is None:
        raise InvalidReferenceError(f"Malformed path segment '{segment}'")
    if match.group("index") in (None, "1"):
        return match.group("name")
    return segment


def relative_path(source: str, target: str) -> str:
    """Express the absolute path ``target`` relative to the node at ``source``."""
    src = _split(source)
    dst = _split(target)
    common = 0
    while common < min(len(src), len(dst)) and src[common] == dst[common]:
        common += 1
    parts = [".."] * (len(src) - common) + dst[common:]
    return "/".join(parts) or "."


def resolve_path(current: str, reference: str) -> str:
    """Turn a relative or absolute reference into a normalized absolute path."""
    segments = [] if reference.startswith("/") else _split(current)
    for part in _split(reference):
        if part == "..":
            if not segments:
                raise InvalidReferenceError(
                    f"Reference '{reference}' climbs above the document root", current
                )
            segments.pop()
        elif part != ".":
            segments.append(part)
    return "/" + "/".join(segments)


# =============================================================================
# Reference Tracker
# =============================================================================


class VisitStatus(enum.Enum):
    FIRST_VISIT = "first-visit"
    ALREADY_VISITED = "already-visited"
    IN_PROGRESS = "in-progress"


@dataclass(frozen=True)
class Visit:
    """Outcome of ReferenceTracker.path_for()."""

    status: VisitStatus
    path: str


REFERENCE_MODES = ("relative", "absolute", "none")


class ReferenceTracker:
    """
    Identity to path registry for one marshal or unmarshal call.

    Args:
        mode: "relative" renders repeat references relative to the node
            holding them, "absolute" renders them from the root, "none"
            forgets objects once they are written so only cycles are
            detected.
    """

    def __init__(self, mode: str = "relative"):
        if mode not in REFERENCE_MODES:
            raise ValueError(f"Unknown reference mode '{mode}', expected one of {REFERENCE_MODES}")
        self.mode = mode
        self._paths: dict[int, str] = {}
        self._active: set[int] = set()
        self._objects: dict[str, object] = {}
        # Keep tracked objects alive so id() values cannot be reused mid-call
        self._refs: list = []

    # -------------------------------------------------------------------------
    # Marshal side
    # -------------------------------------------------------------------------

    def path_for(self, obj: object, current_path: str) -> Visit:
        """
        Look up ``obj`` while a node for it is being written at ``current_path``.

        The first visit records the path and marks the object active until
        leave() is called. Later visits report the recorded path rendered
        for ``current_path``; IN_PROGRESS means the object is an ancestor
        of the current node.
        """
        key = id(obj)
        recorded = self._paths.get(key)
        if recorded is None:
            self._paths[key] = current_path
            self._active.add(key)
            self._refs.append(obj)
            return Visit(VisitStatus.FIRST_VISIT, current_path)
        status = VisitStatus.IN_PROGRESS if key in self._active else VisitStatus.ALREADY_VISITED
        return Visit(status, self.render(recorded, current_path))

    def leave(self, obj: object) -> None:
        key = id(obj)
        self._active.discard(key)
        if self.mode == "none":
            self._paths.pop(key, None)

    def render(self, target: str, current_path: str) -> str:
        if self.mode == "absolute":
            return target
        return relative_path(current_path, target)

    # -------------------------------------------------------------------------
    # Unmarshal side
    # -------------------------------------------------------------------------

    def register(self, path: str, obj: object) -> None:
        """Record the object constructed for the node at ``path``."""
        self._objects[resolve_path("/", path)] = obj

    def resolve(self, reference: str, current_path: str) -> object:
        """Return the object a reference attribute points at."""
        target = resolve_path(current_path, reference)
        try:
            return self._objects[target]
        except KeyError:
            raise InvalidReferenceError(
                f"Reference '{reference}' points at {target}, where no object was read",
                current_path,
            ) from None
