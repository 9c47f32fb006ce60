"""Split unified diffs into hunks and annotate them with line numbers."""

from __future__ import annotations

import logging
import re

from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r'^@@ -(\d+),(\d+) \+(\d+),(\d+) @@.*$', re.M)


class LineKind(str, Enum):
    """Tag of a single diff body line."""

    CONTEXT = 'context'
    ADDED = 'added'
    REMOVED = 'removed'


@dataclass(frozen=True)
class HunkLine:
    """
    One body line of a hunk.

    ``text`` has the ``+``/``-`` prefix stripped for added and removed
    lines; context lines keep their raw text.
    """

    kind: LineKind
    text: str


@dataclass(frozen=True)
class HunkHeader:
    old_start: int
    old_count: int
    new_start: int
    new_count: int

    @property
    def old_end(self) -> int:
        return self.old_start + self.old_count - 1

    @property
    def new_end(self) -> int:
        return self.new_start + self.new_count - 1


@dataclass(frozen=True)
class AnnotatedHunk:
    """
    A hunk rendered for the model.

    Attributes
    ----------
    old_text:
        Removed and context lines, without line numbers.
    new_text:
        Added and context lines, each prefixed with ``"<n>: "`` where ``n``
        is the line number in the destination file.
    new_start_line, new_end_line:
        Inclusive destination range; ``new_end_line`` is
        ``new_start_line - 1`` for a pure deletion.
    """

    old_text: str
    new_text: str
    new_start_line: int
    new_end_line: int
    old_start_line: int = 0
    old_end_line: int = -1

    @property
    def line_range(self) -> tuple[int, int]:
        return self.new_start_line, self.new_end_line


def split_patch(raw_patch: str | None) -> list[str]:
    """
    Split one file's unified diff into single-hunk segments.

    Each segment starts at a hunk header and runs until the next header or
    the end of the input. Text before the first header is dropped.

    Parameters
    ----------
    raw_patch:
        Raw patch text of one file, or None.

    Returns
    -------
    list[str]
        Hunk segments in source order; empty when no header matches.
    """
    if not raw_patch:
        return []

    starts = [m.start() for m in HUNK_HEADER_RE.finditer(raw_patch)]
    if not starts:
        return []
    ends = starts[1:] + [len(raw_patch)]
    return [raw_patch[s:e] for s, e in zip(starts, ends)]


def parse_hunk_header(hunk_text: str) -> HunkHeader | None:
    """
    Parse the first hunk header found in ``hunk_text``.

    Parameters
    ----------
    hunk_text:
        Text of one hunk, header first.

    Returns
    -------
    HunkHeader | None
        Parsed header, or None if there is no valid header.
    """
    match = HUNK_HEADER_RE.search(hunk_text)
    if match is None:
        return None
    old_start, old_count, new_start, new_count = (
        int(g) for g in match.groups()
    )
    return HunkHeader(old_start, old_count, new_start, new_count)


def split_hunk_lines(hunk_text: str) -> list[HunkLine]:
    """
    Tag the body lines of a hunk.

    The header line is skipped and a trailing empty line is discarded.

    Parameters
    ----------
    hunk_text:
        Text of one hunk, header first.

    Returns
    -------
    list[HunkLine]
        Body lines in order.
    """
    lines = hunk_text.split('\n')[1:]
    if lines and lines[-1] == '':
        lines.pop()

    tagged: list[HunkLine] = []
    for line in lines:
        if line.startswith('-'):
            tagged.append(HunkLine(LineKind.REMOVED, line[1:]))
        elif line.startswith('+'):
            tagged.append(HunkLine(LineKind.ADDED, line[1:]))
        else:
            tagged.append(HunkLine(LineKind.CONTEXT, line))
    return tagged


def annotate_hunk(hunk_text: str) -> AnnotatedHunk | None:
    """
    Build the old/new views of one hunk.

    Removed lines go to the old view only, added lines to the new view
    only, context lines to both. Every line of the new view carries its
    destination line number. Context lines are copied verbatim, including
    the leading space the diff format puts in front of them.

    Parameters
    ----------
    hunk_text:
        Text of one hunk, header first.

    Returns
    -------
    AnnotatedHunk | None
        The annotated hunk, or None if the header cannot be parsed.
    """
    header = parse_hunk_header(hunk_text)
    if header is None:
        logger.debug('Skipping hunk with unparseable header')
        return None

    old_lines: list[str] = []
    new_lines: list[str] = []
    new_line = header.new_start

    for hunk_line in split_hunk_lines(hunk_text):
        if hunk_line.kind is LineKind.REMOVED:
            old_lines.append(hunk_line.text)
        elif hunk_line.kind is LineKind.ADDED:
            new_lines.append(f'{new_line}: {hunk_line.text}')
            new_line += 1
        else:
            old_lines.append(hunk_line.text)
            new_lines.append(f'{new_line}: {hunk_line.text}')
            new_line += 1

    return AnnotatedHunk(
        old_text='\n'.join(old_lines),
        new_text='\n'.join(new_lines),
        new_start_line=header.new_start,
        new_end_line=header.new_end,
        old_start_line=header.old_start,
        old_end_line=header.old_end,
    )


def annotate_patch(raw_patch: str | None) -> list[AnnotatedHunk]:
    """Split and annotate a whole file patch, skipping broken hunks."""
    hunks: list[AnnotatedHunk] = []
    for segment in split_patch(raw_patch):
        hunk = annotate_hunk(segment)
        if hunk is not None:
            hunks.append(hunk)
    return hunks


def is_binary_diff(diff_text: str) -> bool:
    """Return True if a diff chunk represents a binary change."""
    t = diff_text.lower()
    return 'git binary patch' in t or 'binary files ' in t
