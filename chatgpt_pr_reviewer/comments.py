"""Comment records, comment chains and the tags marking bot content."""

from __future__ import annotations

import logging
import re
import threading

from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

COMMENT_GREETING = ':robot: OpenAI'

COMMENT_TAG = '<!-- This is an auto-generated comment by OpenAI -->'
COMMENT_REPLY_TAG = '<!-- This is an auto-generated reply by OpenAI -->'
SUMMARIZE_TAG = (
    '<!-- This is an auto-generated comment: summarize by openai -->'
)
EXTRA_CONTENT_TAG = '<!-- Extra content -->'

DESCRIPTION_TAG = (
    '<!-- This is an auto-generated comment: release notes by openai -->'
)
DESCRIPTION_TAG_END = (
    '<!-- end of auto-generated comment: release notes by openai -->'
)

RAW_SUMMARY_TAG = (
    '<!-- This is an auto-generated comment: raw summary by openai -->'
)
RAW_SUMMARY_TAG_END = (
    '<!-- end of auto-generated comment: raw summary by openai -->'
)

_QUOTE_LINE_RE = re.compile(r'(^|\n)> .*')


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


@dataclass(frozen=True)
class CommentUser:
    login: str


@dataclass(frozen=True)
class ReviewComment:
    """A review comment anchored to lines of a file in the PR."""

    id: int
    body: str
    path: str
    line: int | None = None
    start_line: int | None = None
    in_reply_to_id: int | None = None
    user: CommentUser = CommentUser('')

    @classmethod
    def from_api(cls, obj: Any) -> ReviewComment:
        """
        Build a record from a PyGithub object or a REST payload dict.

        Parameters
        ----------
        obj:
            ``PullRequestComment`` or decoded JSON.

        Returns
        -------
        ReviewComment
            Record holding only the fields the reviewer reads.
        """
        user = _field(obj, 'user')
        login = _field(user, 'login', '') if user is not None else ''
        return cls(
            id=_field(obj, 'id'),
            body=_field(obj, 'body', '') or '',
            path=_field(obj, 'path', '') or '',
            line=_field(obj, 'line', None),
            start_line=_field(obj, 'start_line', None),
            in_reply_to_id=_field(obj, 'in_reply_to_id', None),
            user=CommentUser(login or ''),
        )


@dataclass(frozen=True)
class IssueComment:
    id: int
    body: str

    @classmethod
    def from_api(cls, obj: Any) -> IssueComment:
        return cls(id=_field(obj, 'id'), body=_field(obj, 'body', '') or '')


class ReviewCommentCache:
    """
    Per-run cache of review comments keyed by pull request number.

    Parameters
    ----------
    loader:
        Fetches all review comments of a pull request.
    """

    def __init__(self, loader: Callable[[int], list[ReviewComment]]) -> None:
        self._loader = loader
        self._cache: dict[int, list[ReviewComment]] = {}
        self._lock = threading.Lock()

    def get(self, pr_number: int) -> list[ReviewComment]:
        """Return the cached comments; failed loads raise and are retried."""
        with self._lock:
            if pr_number not in self._cache:
                self._cache[pr_number] = self._loader(pr_number)
            return self._cache[pr_number]


def comments_within_range(
    comments: list[ReviewComment], path: str, start_line: int, end_line: int
) -> list[ReviewComment]:
    """Return comments on ``path`` lying inside ``start_line..end_line``."""
    return [
        c
        for c in comments
        if c.path == path
        and c.body != ''
        and (
            (
                c.start_line is not None
                and c.line is not None
                and c.start_line >= start_line
                and c.line <= end_line
            )
            or (start_line == end_line and c.line == end_line)
        )
    ]


def comments_at_range(
    comments: list[ReviewComment], path: str, start_line: int, end_line: int
) -> list[ReviewComment]:
    """Return comments on ``path`` placed exactly on the given range."""
    return [
        c
        for c in comments
        if c.path == path
        and c.body != ''
        and (
            (c.start_line == start_line and c.line == end_line)
            or (start_line == end_line and c.line == end_line)
        )
    ]


def compose_comment_chain(
    comments: list[ReviewComment], top: ReviewComment
) -> str:
    """Flatten a thread into ``"login: body"`` entries, oldest first."""
    chain = [f'{top.user.login}: {top.body}']
    chain.extend(
        f'{c.user.login}: {c.body}'
        for c in comments
        if c.in_reply_to_id == top.id
    )
    return '\n---\n'.join(chain)


def comment_chains_within_range(
    comments: list[ReviewComment],
    path: str,
    start_line: int,
    end_line: int,
    tag: str = '',
) -> str:
    """
    Render every thread anchored inside a line range.

    Only threads whose text contains ``tag`` are kept, so passing
    ``COMMENT_REPLY_TAG`` selects conversations the bot took part in.

    Returns
    -------
    str
        ``Conversation Chain N:`` blocks separated by ``---`` lines, or an
        empty string.
    """
    existing = comments_within_range(comments, path, start_line, end_line)
    all_chains = ''
    chain_num = 0
    for top in (c for c in existing if not c.in_reply_to_id):
        chain = compose_comment_chain(existing, top)
        if chain and tag in chain:
            chain_num += 1
            all_chains += f'Conversation Chain {chain_num}:\n{chain}\n---\n'
    return all_chains


def wrap_comment(message: str, tag: str = COMMENT_TAG) -> str:
    """Frame a bot message with the greeting and its hidden tag."""
    return f'{COMMENT_GREETING}\n\n{message}\n\n{tag}'


def content_within_tags(content: str, start_tag: str, end_tag: str) -> str:
    start = content.find(start_tag)
    end = content.find(end_tag)
    if start >= 0 and end >= 0:
        return content[start + len(start_tag) : end]
    return ''


def remove_content_within_tags(
    content: str, start_tag: str, end_tag: str
) -> str:
    start = content.find(start_tag)
    end = content.find(end_tag)
    if start >= 0 and end >= 0:
        return content[:start] + content[end + len(end_tag) :]
    return content


def get_raw_summary(summary: str) -> str:
    """
    Recover the raw summary hidden in a previous summary comment.

    The raw summary sits inside an HTML comment between the raw summary
    tags; the first and last lines are the comment delimiters.
    """
    content = content_within_tags(
        summary, RAW_SUMMARY_TAG, RAW_SUMMARY_TAG_END
    )
    lines = content.strip('\n').split('\n')
    if len(lines) >= 2 and lines[0] == '<!--' and lines[-1] == '-->':
        lines = lines[1:-1]
    return '\n'.join(lines)


def get_description(description: str) -> str:
    """Return the PR description without the bot's release notes."""
    return remove_content_within_tags(
        description, DESCRIPTION_TAG, DESCRIPTION_TAG_END
    )


def get_release_notes(description: str) -> str:
    release_notes = content_within_tags(
        description, DESCRIPTION_TAG, DESCRIPTION_TAG_END
    )
    return strip_quote_lines(release_notes)


def strip_quote_lines(text: str) -> str:
    """Drop markdown quote lines (``> ...``)."""
    return _QUOTE_LINE_RE.sub('', text)


def update_description_body(body: str, message: str) -> str:
    """
    Put ``message`` between the release-notes tags of a PR description.

    The tagged block is replaced when present and appended otherwise.
    """
    body = body or ''
    comment = f'{DESCRIPTION_TAG}\n{message}\n{DESCRIPTION_TAG_END}'
    tag_index = body.find(DESCRIPTION_TAG)
    tag_end_index = body.find(DESCRIPTION_TAG_END)
    if tag_index == -1 or tag_end_index == -1:
        return f'{body}\n{comment}'
    return (
        body[:tag_index]
        + comment
        + body[tag_end_index + len(DESCRIPTION_TAG_END) :]
    )
