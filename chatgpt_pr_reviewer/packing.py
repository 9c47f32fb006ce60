"""Pack change sections into token-bounded model requests."""

from __future__ import annotations

import dataclasses
import logging

from dataclasses import dataclass, field
from typing import Callable

from chatgpt_pr_reviewer.patch import AnnotatedHunk

logger = logging.getLogger(__name__)

CountTokens = Callable[[str], int]
# (start_line, end_line) -> flattened comment chains for that range
CommentChainLoader = Callable[[int, int], str]


@dataclass(frozen=True)
class ChangeSection:
    """One annotated hunk plus the comment chains anchored to its range."""

    hunk: AnnotatedHunk
    comment_chain_text: str = ''

    @property
    def start_line(self) -> int:
        return self.hunk.new_start_line

    @property
    def end_line(self) -> int:
        return self.hunk.new_end_line

    def render_hunk(self) -> str:
        return (
            '\n---new_hunk---\n'
            f'```\n{self.hunk.new_text}\n```\n'
            '\n---old_hunk---\n'
            f'```\n{self.hunk.old_text}\n```\n'
        )

    def render_comment_chain(self) -> str:
        if not self.comment_chain_text:
            return ''
        return render_comment_chain(self.comment_chain_text)

    def render(self) -> str:
        """Render the full section in the fixed three-part layout."""
        return (
            self.render_hunk()
            + self.render_comment_chain()
            + '\n---end_change_section---\n'
        )


def render_comment_chain(comment_chain_text: str) -> str:
    return f'\n---comment_chains---\n```\n{comment_chain_text}\n```\n'


@dataclass
class ReviewUnit:
    """
    The part of one file that fits into a single review request.

    ``sections`` is a prefix of the file's sections in source order; each
    carries the comment chain text actually packed with it, if any.
    """

    filename: str
    file_content: str = ''
    sections: list[ChangeSection] = field(default_factory=list)
    tokens: int = 0
    omitted: int = 0

    def render_patches(self) -> str:
        return ''.join(section.render() for section in self.sections)


@dataclass
class SummaryUnit:
    """A single-file summarization request that fits the budget."""

    filename: str
    file_diff: str
    file_content: str = ''
    tokens: int = 0


def build_sections(hunks: list[AnnotatedHunk]) -> list[ChangeSection]:
    return [ChangeSection(hunk) for hunk in hunks]


def _section_cost(section: ChangeSection, count_tokens: CountTokens) -> int:
    return count_tokens(
        section.render_hunk() + '\n---end_change_section---\n'
    )


def pack_sections(
    sections: list[ChangeSection],
    file_content: str,
    budget: int,
    count_tokens: CountTokens,
    *,
    filename: str,
    base_prompt: str,
    file_content_slots: int = 1,
    load_comment_chain: CommentChainLoader | None = None,
) -> ReviewUnit:
    """
    Greedily pack the longest prefix of ``sections`` that fits ``budget``.

    The running total starts with the tokens of ``base_prompt`` (the
    instructions rendered for ``filename``). The file content is added
    first if all of its copies fit. Sections are then taken in order
    until the next one would overflow; the rest are left out of this
    request. Each packed section also gets its comment chain when the
    chain still fits, otherwise it is packed without one.

    Parameters
    ----------
    sections:
        Change sections of one file in source order.
    file_content:
        Whole-file content; may be empty.
    budget:
        Maximum prompt tokens for the request.
    count_tokens:
        Token counting function.
    filename:
        File being reviewed.
    base_prompt:
        Prompt rendered without file content and sections.
    file_content_slots:
        Number of times the template repeats the file content.
    load_comment_chain:
        Optional loader used for sections without comment chain text.
        Loader errors are logged and the section is packed without a
        chain.

    Returns
    -------
    ReviewUnit
        Packed request unit.
    """
    unit = ReviewUnit(filename=filename)
    total = count_tokens(base_prompt)

    if file_content and file_content_slots > 0:
        content_tokens = count_tokens(file_content) * file_content_slots
        if total + content_tokens <= budget:
            unit.file_content = file_content
            total += content_tokens
        else:
            logger.info(
                'File content of %s omitted: %s tokens over budget %s',
                filename,
                content_tokens,
                budget,
            )

    for index, section in enumerate(sections):
        cost = _section_cost(section, count_tokens)
        if total + cost > budget:
            unit.omitted = len(sections) - index
            logger.info(
                'Unable to pack more sections for %s: packed %s, omitted %s',
                filename,
                index,
                unit.omitted,
            )
            break
        total += cost

        chain = section.comment_chain_text
        if not chain and load_comment_chain is not None:
            try:
                chain = load_comment_chain(
                    section.start_line, section.end_line
                )
            except Exception as exc:
                logger.warning(
                    'Failed to get comment chains for %s:%s-%s: %s',
                    filename,
                    section.start_line,
                    section.end_line,
                    exc,
                )
                chain = ''

        if chain:
            chain_tokens = count_tokens(render_comment_chain(chain))
            if total + chain_tokens <= budget:
                total += chain_tokens
            else:
                logger.debug(
                    'Comment chain for %s:%s-%s dropped for budget',
                    filename,
                    section.start_line,
                    section.end_line,
                )
                chain = ''

        unit.sections.append(
            dataclasses.replace(section, comment_chain_text=chain)
        )

    unit.tokens = total
    return unit


def pack_summary(
    file_diff: str,
    file_content: str,
    budget: int,
    count_tokens: CountTokens,
    *,
    filename: str,
    base_prompt: str,
    file_content_slots: int = 1,
) -> SummaryUnit | None:
    """
    Fit one file's diff, and optionally its content, into a summary request.

    The request is skipped outright, never truncated, when the diff alone
    does not fit next to the prompt.

    Returns
    -------
    SummaryUnit | None
        The request unit, or None if the diff exceeds the budget.
    """
    total = count_tokens(base_prompt) + count_tokens(file_diff)
    if total > budget:
        return None

    unit = SummaryUnit(filename=filename, file_diff=file_diff)
    if file_content and file_content_slots > 0:
        content_tokens = count_tokens(file_content) * file_content_slots
        if total + content_tokens <= budget:
            unit.file_content = file_content
            total += content_tokens
    unit.tokens = total
    return unit
