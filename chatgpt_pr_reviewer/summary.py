"""Per-run outcome buckets and the summary comment built from them."""

from __future__ import annotations

import re
import threading

from dataclasses import dataclass, field

from chatgpt_pr_reviewer.comments import (
    EXTRA_CONTENT_TAG,
    RAW_SUMMARY_TAG,
    RAW_SUMMARY_TAG_END,
)

TRIAGE_RE = re.compile(r'\[TRIAGE\]:\s*(NEEDS_REVIEW|APPROVED)')

SUMMARY_FOOTER = """---

### Chat with :robot: OpenAI Bot (`@openai`)
- Reply on review comments left by this bot to ask follow-up questions.
- Invite the bot into a review comment chain by tagging `@openai` in a reply.

### Code suggestions
- The bot may make code suggestions, but please review them carefully before
  committing since the line number ranges may be misaligned.
- You can edit the comment made by the bot and manually tweak the suggestion
  if it is slightly off.

---
"""


def parse_triage(text: str) -> tuple[str, bool]:
    """
    Split a file summary from its triage verdict.

    Parameters
    ----------
    text:
        Model answer, possibly holding ``[TRIAGE]: NEEDS_REVIEW`` or
        ``[TRIAGE]: APPROVED``.

    Returns
    -------
    tuple[str, bool]
        (summary without the triage line, needs_review). Answers without a
        verdict need review.
    """
    match = TRIAGE_RE.search(text)
    if match is None:
        return text, True
    return TRIAGE_RE.sub('', text).strip(), match.group(1) == 'NEEDS_REVIEW'


@dataclass
class RunReport:
    """
    Outcome buckets of one run, filled concurrently by per-file tasks.

    Every bucket is rendered as its own list in the summary comment.
    """

    ignored_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    summaries_failed: list[str] = field(default_factory=list)
    reviews_skipped: list[str] = field(default_factory=list)
    reviews_failed: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def add(self, bucket: str, entry: str) -> None:
        with self._lock:
            getattr(self, bucket).append(entry)


def _details(title: str, heading: str, entries: list[str]) -> str:
    if not entries:
        return ''
    items = '\n* '.join(entries)
    return (
        '\n<details>\n'
        f'<summary>{title} ({len(entries)})</summary>\n\n'
        f'### {heading}\n\n'
        f'* {items}\n\n'
        '</details>\n'
    )


def render_summary_comment(
    final_summary: str,
    raw_summary: str,
    report: RunReport,
    marker_block: str = '',
) -> str:
    """
    Render the summary comment posted on the pull request.

    Parameters
    ----------
    final_summary:
        Model-written summary shown to readers.
    raw_summary:
        Per-file summaries, hidden in an HTML comment for the next run.
    report:
        Outcome buckets of this run.
    marker_block:
        Reviewed-commits block to persist, if any.

    Returns
    -------
    str
        Markdown body.
    """
    sections = [
        f'{final_summary}\n'
        f'{RAW_SUMMARY_TAG}\n<!--\n{raw_summary}\n-->\n'
        f'{RAW_SUMMARY_TAG_END}\n'
        f'{EXTRA_CONTENT_TAG}\n'
        f'{SUMMARY_FOOTER}',
        _details(
            'Files ignored due to filter',
            'Ignored files',
            report.ignored_files,
        ),
        _details(
            'Files not processed due to max files limit',
            'Not processed',
            report.skipped_files,
        ),
        _details(
            'Files not summarized due to errors',
            'Failed to summarize',
            report.summaries_failed,
        ),
        _details(
            'Files not reviewed due to errors in this run',
            'Failed to review',
            report.reviews_failed,
        ),
        _details(
            'Files not reviewed due to simple changes',
            'Skipped review',
            report.reviews_skipped,
        ),
    ]
    body = ''.join(sections)
    if marker_block:
        body += f'\n{marker_block}'
    return body
