"""Turn the model's review answer into line-ranged comments."""

from __future__ import annotations

import logging
import re

from dataclasses import dataclass
from enum import Enum
from typing import Iterator

logger = logging.getLogger(__name__)

LINE_RANGE_RE = re.compile(r'(?:^|\s)(\d+)-(\d+):\s*$')
COMMENT_SEPARATOR = '---'

SUGGESTION_START = '```suggestion'
SUGGESTION_END = '```'
LINE_NUMBER_RE = re.compile(r'^ *(\d+): ', re.M)

OUT_OF_PATCH_NOTE = (
    '> Note: This review was outside of the patch, so it was mapped to the '
    'patch with the greatest overlap. Original lines [{start}-{end}]'
)


class TokenKind(str, Enum):
    RANGE = 'range'
    SEPARATOR = 'separator'
    TEXT = 'text'


class State(str, Enum):
    IDLE = 'idle'
    OPEN = 'open'


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str = ''
    start: int = 0
    end: int = 0


@dataclass
class ParsedComment:
    start_line: int
    end_line: int
    comment: str


def tokenize_response(response: str) -> Iterator[Token]:
    """
    Classify each line of a review answer.

    Yields
    ------
    Token
        ``RANGE`` for ``<start>-<end>:`` headers, ``SEPARATOR`` for ``---``
        lines and ``TEXT`` for everything else.
    """
    for line in response.split('\n'):
        match = LINE_RANGE_RE.search(line)
        if match:
            yield Token(
                TokenKind.RANGE,
                line,
                start=int(match.group(1)),
                end=int(match.group(2)),
            )
        elif line.strip() == COMMENT_SEPARATOR:
            yield Token(TokenKind.SEPARATOR, line)
        else:
            yield Token(TokenKind.TEXT, line)


def sanitize_comment(comment: str) -> str:
    """
    Strip line-number annotations from suggestion blocks.

    The numbers are the ``"<n>: "`` prefixes of the annotated hunk, which
    the model sometimes copies. Text outside suggestion blocks is left
    untouched.

    Parameters
    ----------
    comment:
        Review comment text.

    Returns
    -------
    str
        Sanitized comment.
    """
    start = comment.find(SUGGESTION_START)
    while start != -1:
        body_start = start + len(SUGGESTION_START)
        end = comment.find(SUGGESTION_END, body_start)
        if end == -1:
            break
        block = LINE_NUMBER_RE.sub('', comment[body_start:end])
        comment = comment[:body_start] + block + comment[end:]
        start = comment.find(
            SUGGESTION_START, body_start + len(block) + len(SUGGESTION_END)
        )
    return comment


def best_overlap(
    start: int, end: int, known_ranges: list[tuple[int, int]]
) -> tuple[tuple[int, int], bool]:
    """
    Find the known range that best covers ``start..end``.

    The first range reaching the largest overlap wins; the scan stops as
    soon as a range contains the whole comment.

    Parameters
    ----------
    start, end:
        Inclusive comment range.
    known_ranges:
        Hunk ranges of the file, in source order; must not be empty.

    Returns
    -------
    tuple[tuple[int, int], bool]
        The chosen range and whether the comment lies fully inside it.
    """
    best = known_ranges[0]
    max_intersection = 0
    within = False
    for s, e in known_ranges:
        intersection = max(0, min(end, e) - max(start, s) + 1)
        if intersection > max_intersection:
            max_intersection = intersection
            best = (s, e)
            within = intersection == end - start + 1
        if within:
            break
    return best, within


class ReviewParser:
    """
    Small state machine over review tokens.

    In ``IDLE`` text is discarded; a range header opens a comment. In
    ``OPEN`` text accumulates into the comment body. Range headers and
    separators flush the open comment.
    """

    def __init__(
        self, known_ranges: list[tuple[int, int]], debug: bool = False
    ) -> None:
        self.known_ranges = list(known_ranges)
        self.debug = debug
        self.state = State.IDLE
        self.comments: list[ParsedComment] = []
        self._start = 0
        self._end = 0
        self._body = ''

    def feed(self, token: Token) -> State:
        """Apply one token and return the new state."""
        if token.kind is TokenKind.RANGE:
            self.flush()
            self.state = State.OPEN
            self._start, self._end = token.start, token.end
            self._body = ''
            if self.debug:
                logger.info(
                    'Found line number range: %s-%s', token.start, token.end
                )
        elif token.kind is TokenKind.SEPARATOR:
            self.flush()
            if self.debug:
                logger.info('Found comment separator')
        elif self.state is State.OPEN:
            self._body += f'{token.text}\n'
        return self.state

    def flush(self) -> None:
        """Store the open comment, if any, and return to ``IDLE``."""
        if self.state is State.OPEN:
            self.comments.append(self._store())
        self.state = State.IDLE
        self._body = ''

    def _store(self) -> ParsedComment:
        review = ParsedComment(
            start_line=self._start,
            end_line=self._end,
            comment=sanitize_comment(self._body.strip()).strip(),
        )
        if self.known_ranges:
            (s, e), within = best_overlap(
                review.start_line, review.end_line, self.known_ranges
            )
            if not within:
                note = OUT_OF_PATCH_NOTE.format(
                    start=review.start_line, end=review.end_line
                )
                review.comment = f'{note}\n\n{review.comment}'
                review.start_line, review.end_line = s, e

        logger.info(
            'Stored comment for line range %s-%s: %s',
            self._start,
            self._end,
            self._body.strip(),
        )
        return review

    def parse(self, response: str) -> list[ParsedComment]:
        for token in tokenize_response(response):
            self.feed(token)
        self.flush()
        return self.comments


def parse_review(
    response: str,
    known_ranges: list[tuple[int, int]],
    debug: bool = False,
) -> list[ParsedComment]:
    """
    Parse a review answer into comments placed on the file's hunks.

    Parameters
    ----------
    response:
        Model answer made of ``<start>-<end>:`` sections separated by
        ``---`` lines.
    known_ranges:
        ``(new_start_line, new_end_line)`` of every hunk sent for the file.
    debug:
        Log every state transition.

    Returns
    -------
    list[ParsedComment]
        Comments in answer order. Comments outside every hunk are moved
        to the best-overlapping hunk and noted as such.
    """
    return ReviewParser(known_ranges, debug=debug).parse(response)
