"""
Diff engine: unified line diffs between two content blobs.

Produces a structured result (a list of typed lines) so the CLI can
color it and tests can count additions and removals without parsing
terminal output.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .store import sha256_hex

CONTEXT_LINES = 3


class DiffStatus(str, Enum):
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    NO_BASELINE = "no-baseline"
    MISSING = "missing"
    BINARY = "binary"
    ERROR = "error"


class LineKind(str, Enum):
    HEADER = "header"
    HUNK = "hunk"
    ADD = "add"
    REMOVE = "remove"
    CONTEXT = "context"


@dataclass
class DiffLine:
    kind: LineKind
    text: str


@dataclass
class FileDiff:
    """Diff of one file between an old and a new state.

    Attributes:
        file_path: Portable path the diff is about.
        status: Overall classification.
        old_hash: Digest of the old content (None when there was none).
        new_hash: Digest of the new content (None when it is gone).
        lines: Unified diff, one entry per output line.
        old_label: What the old side is (e.g. ``snapshot #3``).
        new_label: What the new side is (e.g. ``working copy``).
        error: Why the new side could not be read, for ``error``.
    """

    file_path: str
    status: DiffStatus
    old_hash: Optional[str] = None
    new_hash: Optional[str] = None
    lines: list[DiffLine] = field(default_factory=list)
    old_label: str = ""
    new_label: str = ""
    error: Optional[str] = None

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.ADD)

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.REMOVE)

    @property
    def has_changes(self) -> bool:
        return self.status is not DiffStatus.UNCHANGED

    def as_text(self) -> str:
        return "\n".join(line.text for line in self.lines)


def _is_binary(data: bytes) -> bool:
    return b"\x00" in data


def _split(data: bytes) -> list[str]:
    return data.decode("utf-8", errors="replace").splitlines(keepends=True)


def _classify(line: str) -> LineKind:
    if line.startswith("@@"):
        return LineKind.HUNK
    if line.startswith("+"):
        return LineKind.ADD
    if line.startswith("-"):
        return LineKind.REMOVE
    return LineKind.CONTEXT


def unified_lines(old: bytes, new: bytes, file_path: str, context: int = CONTEXT_LINES) -> list[DiffLine]:
    """Line-level unified diff of two byte strings.

    Identical content yields an empty list (no headers either).
    """
    path = file_path.lstrip("/")
    raw = difflib.unified_diff(
        _split(old),
        _split(new),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        n=context,
    )
    lines: list[DiffLine] = []
    for position, line in enumerate(raw):
        # The first two lines are always the ---/+++ file headers.
        kind = LineKind.HEADER if position < 2 else _classify(line)
        lines.append(DiffLine(kind=kind, text=line.rstrip("\r\n")))
    return lines


def compute_diff(
    old: Optional[bytes],
    new: Optional[bytes],
    file_path: str,
    old_label: str = "",
    new_label: str = "",
) -> FileDiff:
    """Compare two content states of a file.

    Args:
        old: Baseline content, or None when there is no baseline.
        new: Current content, or None when the file is gone.
        file_path: Portable path used in the diff headers.
        old_label: Description of the baseline.
        new_label: Description of the current side.

    Returns:
        FileDiff: Status plus the structured unified diff.
    """
    result = FileDiff(
        file_path=file_path,
        status=DiffStatus.UNCHANGED,
        old_hash=sha256_hex(old) if old is not None else None,
        new_hash=sha256_hex(new) if new is not None else None,
        old_label=old_label,
        new_label=new_label,
    )

    if old is None:
        result.status = DiffStatus.NO_BASELINE
        if new is not None and not _is_binary(new):
            result.lines = unified_lines(b"", new, file_path)
        return result

    if new is None:
        result.status = DiffStatus.MISSING
        if not _is_binary(old):
            result.lines = unified_lines(old, b"", file_path)
        return result

    if old == new:
        return result

    if _is_binary(old) or _is_binary(new):
        result.status = DiffStatus.BINARY
        return result

    result.status = DiffStatus.MODIFIED
    result.lines = unified_lines(old, new, file_path)
    return result
