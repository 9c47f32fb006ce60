"""Review a pull request end to end."""

from __future__ import annotations

import logging

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeVar

from chatgpt_pr_reviewer.bot import Bot
from chatgpt_pr_reviewer.comments import (
    COMMENT_REPLY_TAG,
    SUMMARIZE_TAG,
    comment_chains_within_range,
    get_description,
    get_raw_summary,
    get_release_notes,
    strip_quote_lines,
    wrap_comment,
)
from chatgpt_pr_reviewer.commits import (
    CommitLedger,
    append_reviewed,
    get_reviewed_block,
)
from chatgpt_pr_reviewer.config import Options
from chatgpt_pr_reviewer.github_client import (
    FileDiff,
    GitHubClient,
    PullRequestInfo,
    ReviewItem,
)
from chatgpt_pr_reviewer.packing import (
    ChangeSection,
    CountTokens,
    build_sections,
    pack_sections,
    pack_summary,
)
from chatgpt_pr_reviewer.patch import annotate_patch, is_binary_diff
from chatgpt_pr_reviewer.prompts import (
    NO_FILE_CONTENT,
    REVIEW_FILE_DIFF,
    REVIEW_INSTRUCTIONS,
    SUMMARIZE,
    SUMMARIZE_CHANGESETS,
    SUMMARIZE_FILE_DIFF,
    SUMMARIZE_RELEASE_NOTES,
    Inputs,
    placeholder_count,
)
from chatgpt_pr_reviewer.review_parser import parse_review
from chatgpt_pr_reviewer.summary import (
    RunReport,
    parse_triage,
    render_summary_comment,
)
from chatgpt_pr_reviewer.tokens import estimate_tokens

logger = logging.getLogger(__name__)

IGNORE_KEYWORD = '@openai: ignore'
SUMMARY_BATCH_SIZE = 20
LGTM_MARKERS = ('LGTM', 'looks good to me')

T = TypeVar('T')
R = TypeVar('R')


@dataclass
class FileChanges:
    """One file prepared for summarization and review."""

    filename: str
    file_content: str
    file_diff: str
    sections: list[ChangeSection]

    @property
    def known_ranges(self) -> list[tuple[int, int]]:
        return [(s.start_line, s.end_line) for s in self.sections]


@dataclass(frozen=True)
class FileSummary:
    filename: str
    summary: str
    needs_review: bool


@dataclass
class RunResult:
    """What a run produced for the comment-posting side."""

    review_items: list[ReviewItem] = field(default_factory=list)
    summary: str = ''
    marker_block: str = ''
    report: RunReport = field(default_factory=RunReport)


class PullRequestReviewer:
    """
    Summarize and review the commits of a PR not reviewed yet.

    Parameters
    ----------
    options:
        Run options.
    github:
        Client for the pull request.
    light_bot, heavy_bot:
        Chat clients for per-file summaries and for reviews.
    count_tokens:
        Token counting function used for request budgets.
    """

    def __init__(
        self,
        options: Options,
        github: GitHubClient,
        light_bot: Bot,
        heavy_bot: Bot,
        count_tokens: CountTokens = estimate_tokens,
    ) -> None:
        self.options = options
        self.github = github
        self.light_bot = light_bot
        self.heavy_bot = heavy_bot
        self.count_tokens = count_tokens

    @classmethod
    def from_options(cls, options: Options) -> PullRequestReviewer:
        return cls(
            options,
            GitHubClient(options),
            Bot(options, options.light_model),
            Bot(options, options.heavy_model),
        )

    def _run_bounded(
        self, fn: Callable[[T], R], items: Iterable[T]
    ) -> list[R]:
        """Run ``fn`` over ``items`` with at most N calls in flight."""
        with ThreadPoolExecutor(
            max_workers=self.options.concurrency_limit
        ) as executor:
            return list(executor.map(fn, items))

    def run(self) -> RunResult | None:
        """
        Review the pull request and post the results.

        Returns
        -------
        RunResult | None
            The run's output, or None when the run was skipped.

        Raises
        ------
        github.GithubException
            If the pull request or the comparison cannot be fetched.
        """
        pr = self.github.pull_request()
        inputs = Inputs(
            system_message=self.options.system_message,
            title=pr.title,
        )
        if pr.body:
            inputs.description = get_description(pr.body)
            inputs.release_notes = get_release_notes(pr.body)

        if IGNORE_KEYWORD in inputs.description:
            logger.info('Skipped: description contains ignore_keyword')
            return None

        existing_summary = self.github.find_issue_comment_with_tag(
            SUMMARIZE_TAG
        )
        summary_body = existing_summary.body if existing_summary else ''
        if summary_body:
            inputs.raw_summary = get_raw_summary(summary_body)
        marker_block = get_reviewed_block(summary_body)

        ledger = CommitLedger.from_summary(
            self.github.list_commit_shas(), summary_body
        )
        base = ledger.resolve_base(pr.base_sha, pr.head_sha)
        comparison = self.github.compare(base, pr.head_sha)

        report = RunReport()
        selected: list[FileDiff] = []
        for file in comparison.files:
            if not self.options.check_path(file.filename):
                logger.info('skip for excluded path: %s', file.filename)
                report.add('ignored_files', file.filename)
            else:
                selected.append(file)

        changes = [
            c
            for c in self._run_bounded(
                lambda f: self.collect_changes(f, pr), selected
            )
            if c is not None
        ]
        if not changes:
            logger.error('Skipped: no files to review')
            return None

        summaries = self.summarize_files(inputs, changes, report)
        self.summarize_changesets(inputs, summaries)
        final_summary = self.final_summary(inputs)

        result = RunResult(report=report)
        if not self.options.summary_only:
            result.review_items = self.review_files(
                inputs, changes, summaries, report
            )
            self.post_review(
                result.review_items, comparison.head_commit_sha, report
            )
            marker_block = append_reviewed(marker_block, pr.head_sha)
        result.marker_block = marker_block

        result.summary = render_summary_comment(
            final_summary, inputs.raw_summary, report, marker_block
        )
        self.github.upsert_issue_comment(
            wrap_comment(result.summary, SUMMARIZE_TAG), SUMMARIZE_TAG
        )
        return result

    def collect_changes(
        self, file: FileDiff, pr: PullRequestInfo
    ) -> FileChanges | None:
        """
        Fetch a file's content at the PR base and annotate its hunks.

        Returns
        -------
        FileChanges | None
            None when the file has no reviewable hunk.
        """
        if is_binary_diff(file.patch):
            return None
        file_content = ''
        try:
            file_content = self.github.file_content(file.filename, pr.base_sha)
        except Exception as exc:
            logger.warning(
                'Failed to get file contents: %s, skipping.', exc
            )

        sections = build_sections(annotate_patch(file.patch))
        if not sections:
            return None
        return FileChanges(
            filename=file.filename,
            file_content=file_content,
            file_diff=file.patch,
            sections=sections,
        )

    def summarize_file(
        self, inputs: Inputs, changes: FileChanges, report: RunReport
    ) -> FileSummary | None:
        filename = changes.filename
        if not changes.file_diff:
            logger.warning('summarize: file_diff is empty, skip %s', filename)
            report.add('summaries_failed', f'{filename} (empty diff)')
            return None

        ins = inputs.clone(
            filename=filename, file_content=NO_FILE_CONTENT, file_diff=''
        )
        unit = pack_summary(
            changes.file_diff,
            changes.file_content,
            self.options.light_token_limits.request_tokens,
            self.count_tokens,
            filename=filename,
            base_prompt=ins.render(SUMMARIZE_FILE_DIFF),
            file_content_slots=placeholder_count(SUMMARIZE_FILE_DIFF),
        )
        if unit is None:
            logger.info(
                'summarize: diff tokens exceeds limit, skip %s', filename
            )
            report.add(
                'summaries_failed', f'{filename} (diff tokens exceeds limit)'
            )
            return None

        ins.file_diff = unit.file_diff
        if unit.file_content:
            ins.file_content = unit.file_content
        else:
            ins.file_content = NO_FILE_CONTENT

        try:
            response, _ = self.light_bot.chat(
                ins.render(SUMMARIZE_FILE_DIFF), {}
            )
        except Exception as exc:
            logger.warning('summarize: error from openai: %s', exc)
            report.add(
                'summaries_failed', f'{filename} (error from openai: {exc})'
            )
            return None

        if not response:
            logger.info('summarize: nothing obtained from openai')
            report.add(
                'summaries_failed',
                f'{filename} (nothing obtained from openai)',
            )
            return None

        summary, needs_review = parse_triage(response)
        logger.info('filename: %s, needs_review: %s', filename, needs_review)
        return FileSummary(filename, summary, needs_review)

    def _capped(
        self, changes: list[FileChanges], report: RunReport
    ) -> list[FileChanges]:
        cap = self.options.max_files
        if cap <= 0 or len(changes) <= cap:
            return list(changes)
        for skipped in changes[cap:]:
            if skipped.filename not in report.skipped_files:
                report.add('skipped_files', skipped.filename)
        return list(changes[:cap])

    def summarize_files(
        self, inputs: Inputs, changes: list[FileChanges], report: RunReport
    ) -> list[FileSummary]:
        results = self._run_bounded(
            lambda c: self.summarize_file(inputs, c, report),
            self._capped(changes, report),
        )
        return [s for s in results if s is not None]

    def summarize_changesets(
        self, inputs: Inputs, summaries: list[FileSummary]
    ) -> None:
        """Fold file summaries into ``inputs.raw_summary`` in batches."""
        for i in range(0, len(summaries), SUMMARY_BATCH_SIZE):
            for s in summaries[i : i + SUMMARY_BATCH_SIZE]:
                inputs.raw_summary += f'---\n{s.filename}: {s.summary}\n'
            try:
                response, _ = self.heavy_bot.chat(
                    inputs.render(SUMMARIZE_CHANGESETS), {}
                )
            except Exception as exc:
                logger.warning('summarize: error from openai: %s', exc)
                continue
            if not response:
                logger.warning('summarize: nothing obtained from openai')
            else:
                inputs.raw_summary = response

    def final_summary(self, inputs: Inputs) -> str:
        """Ask for the overall summary, then release notes in the same chat."""
        try:
            summary, state = self.heavy_bot.chat(inputs.render(SUMMARIZE), {})
        except Exception as exc:
            logger.warning('summarize: error from openai: %s', exc)
            return ''
        if not summary:
            logger.info('summarize: nothing obtained from openai')
            return ''

        try:
            release_notes, _ = self.heavy_bot.chat(
                inputs.render(SUMMARIZE_RELEASE_NOTES), state
            )
        except Exception as exc:
            logger.warning('release notes: error from openai: %s', exc)
            return summary
        if not release_notes:
            logger.info('release notes: nothing obtained from openai')
        else:
            inputs.release_notes = strip_quote_lines(release_notes)
            self.github.update_description(
                f'### Summary by OpenAI\n\n{release_notes}'
            )
        return summary

    def review_file(
        self, inputs: Inputs, changes: FileChanges, report: RunReport
    ) -> list[ReviewItem]:
        """
        Review the hunks of one file that fit a single request.

        Failures are recorded in ``report`` and yield no items.
        """
        filename = changes.filename
        ins = inputs.clone(
            filename=filename,
            file_content=NO_FILE_CONTENT,
            patches=REVIEW_INSTRUCTIONS,
        )

        def load_comment_chain(start_line: int, end_line: int) -> str:
            return comment_chains_within_range(
                self.github.list_review_comments(),
                filename,
                start_line,
                end_line,
                COMMENT_REPLY_TAG,
            )

        unit = pack_sections(
            changes.sections,
            changes.file_content,
            self.options.heavy_token_limits.request_tokens,
            self.count_tokens,
            filename=filename,
            base_prompt=ins.render(REVIEW_FILE_DIFF),
            file_content_slots=placeholder_count(REVIEW_FILE_DIFF),
            load_comment_chain=load_comment_chain,
        )
        if not unit.sections:
            logger.info('review: diff tokens exceeds limit, skip %s', filename)
            report.add(
                'reviews_failed', f'{filename} (diff tokens exceeds limit)'
            )
            return []

        ins.file_content = unit.file_content or NO_FILE_CONTENT
        ins.patches = REVIEW_INSTRUCTIONS + unit.render_patches()

        try:
            response, _ = self.heavy_bot.chat(ins.render(REVIEW_FILE_DIFF), {})
        except Exception as exc:
            logger.warning('Failed to review: %s, skipping.', exc)
            report.add('reviews_failed', f'{filename} ({exc})')
            return []
        if not response:
            logger.info('review: nothing obtained from openai')
            report.add('reviews_failed', f'{filename} (no response)')
            return []

        items: list[ReviewItem] = []
        for review in parse_review(
            response, changes.known_ranges, self.options.debug
        ):
            if not self.options.review_comment_lgtm and any(
                marker in review.comment for marker in LGTM_MARKERS
            ):
                continue
            items.append(
                ReviewItem(
                    filename=filename,
                    start_line=review.start_line,
                    end_line=review.end_line,
                    comment_text=review.comment,
                )
            )
        return items

    def review_files(
        self,
        inputs: Inputs,
        changes: list[FileChanges],
        summaries: list[FileSummary],
        report: RunReport,
    ) -> list[ReviewItem]:
        needs_review = {s.filename: s.needs_review for s in summaries}
        to_review: list[FileChanges] = []
        for c in changes:
            if needs_review.get(c.filename, True):
                to_review.append(c)
            else:
                report.add('reviews_skipped', c.filename)

        results = self._run_bounded(
            lambda c: self.review_file(inputs, c, report),
            self._capped(to_review, report),
        )
        return [item for items in results for item in items]

    def post_review(
        self, items: list[ReviewItem], commit_id: str, report: RunReport
    ) -> None:
        """Post inline comments one by one, recording failed posts."""
        logger.info(
            'Submitting review for PR #%s, total comments: %s',
            self.options.pr_id,
            len(items),
        )
        for index, item in enumerate(items, start=1):
            try:
                self.github.post_review_comment(
                    ReviewItem(
                        filename=item.filename,
                        start_line=item.start_line,
                        end_line=item.end_line,
                        comment_text=wrap_comment(item.comment_text),
                    ),
                    commit_id,
                )
            except Exception as exc:
                logger.warning(
                    'Failed to post comment on %s: %s', item.filename, exc
                )
                report.add(
                    'reviews_failed', f'{item.filename} comment failed ({exc})'
                )
                continue
            logger.info('Comment %s/%s posted', index, len(items))
