"""Track reviewed commits inside a marker block of the summary comment.

The block survives between runs as HTML comments, one per commit::

    <!-- commit_ids_reviewed_start -->
    <!-- 1f2e3d... -->
    <!-- 4c5b6a... -->
    <!-- commit_ids_reviewed_end -->

Changing the marker strings discards the recorded history.
"""

from __future__ import annotations

import logging

from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

COMMIT_IDS_MARKER_START = '<!-- commit_ids_reviewed_start -->'
COMMIT_IDS_MARKER_END = '<!-- commit_ids_reviewed_end -->'
COMMIT_ID_OPEN = '<!--'
COMMIT_ID_CLOSE = '-->'


def _marker_bounds(body: str) -> tuple[int, int] | None:
    start = body.find(COMMIT_IDS_MARKER_START)
    end = body.find(COMMIT_IDS_MARKER_END)
    if start == -1 or end == -1:
        return None
    return start, end


def get_reviewed_block(body: str) -> str:
    """Return the marker block of ``body``, markers included, or ``''``."""
    bounds = _marker_bounds(body)
    if bounds is None:
        return ''
    start, end = bounds
    return body[start : end + len(COMMIT_IDS_MARKER_END)]


def extract_reviewed(marker_block: str) -> set[str]:
    """
    Read the commit ids recorded in a marker block.

    Parameters
    ----------
    marker_block:
        Text holding both markers; anything around them is ignored.

    Returns
    -------
    set[str]
        Recorded commit ids; empty when a marker is missing.
    """
    bounds = _marker_bounds(marker_block)
    if bounds is None:
        return set()
    start, end = bounds
    inner = marker_block[start + len(COMMIT_IDS_MARKER_START) : end]
    ids = (
        token.replace(COMMIT_ID_CLOSE, '', 1).strip()
        for token in inner.split(COMMIT_ID_OPEN)
    )
    return {commit_id for commit_id in ids if commit_id}


def append_reviewed(container: str, new_sha: str) -> str:
    """
    Record ``new_sha`` in the marker block of ``container``.

    A new block holding only ``new_sha`` is appended when ``container`` has
    no complete block. Existing ids are kept as they are and duplicates are
    not filtered.

    Parameters
    ----------
    container:
        Text holding the marker block, possibly empty.
    new_sha:
        Commit id to record.

    Returns
    -------
    str
        Updated text.
    """
    entry = f'{COMMIT_ID_OPEN} {new_sha} {COMMIT_ID_CLOSE}'
    bounds = _marker_bounds(container)
    if bounds is None:
        return (
            f'{container}\n{COMMIT_IDS_MARKER_START}\n{entry}\n'
            f'{COMMIT_IDS_MARKER_END}'
        )
    _, end = bounds
    return f'{container[:end]}{entry}\n{container[end:]}'


def highest_reviewed_commit_id(
    all_commit_shas: list[str], reviewed_shas: set[str]
) -> str:
    """Return the newest commit of the PR already reviewed, or ``''``."""
    for sha in reversed(all_commit_shas):
        if sha in reviewed_shas:
            return sha
    return ''


def resolve_base(
    all_commit_shas: list[str],
    reviewed_shas: set[str],
    pr_base_sha: str,
    pr_head_sha: str,
) -> str:
    """
    Pick the commit to diff the head against.

    Parameters
    ----------
    all_commit_shas:
        Commits of the pull request, oldest first.
    reviewed_shas:
        Commits recorded as reviewed by earlier runs.
    pr_base_sha, pr_head_sha:
        Base and head of the pull request.

    Returns
    -------
    str
        The newest reviewed commit, or the PR base when nothing was
        reviewed yet or the head itself was already reviewed.
    """
    highest = highest_reviewed_commit_id(all_commit_shas, reviewed_shas)
    if not highest or highest == pr_head_sha:
        logger.info('Will review from the base commit: %s', pr_base_sha)
        return pr_base_sha
    logger.info('Will review from commit: %s', highest)
    return highest


@dataclass
class CommitLedger:
    """Commits of a pull request and the ones already reviewed."""

    all_commit_shas: list[str] = field(default_factory=list)
    reviewed_shas: set[str] = field(default_factory=set)

    @classmethod
    def from_summary(
        cls, all_commit_shas: list[str], summary_body: str
    ) -> CommitLedger:
        return cls(
            all_commit_shas=list(all_commit_shas),
            reviewed_shas=extract_reviewed(get_reviewed_block(summary_body)),
        )

    @property
    def highest_reviewed_sha(self) -> str:
        return highest_reviewed_commit_id(
            self.all_commit_shas, self.reviewed_shas
        )

    def resolve_base(self, pr_base_sha: str, pr_head_sha: str) -> str:
        return resolve_base(
            self.all_commit_shas, self.reviewed_shas, pr_base_sha, pr_head_sha
        )
