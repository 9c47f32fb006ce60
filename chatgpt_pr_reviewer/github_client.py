"""GitHub access for one pull request."""

from __future__ import annotations

import logging

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from github import Auth, Github

from chatgpt_pr_reviewer.comments import (
    COMMENT_TAG,
    IssueComment,
    ReviewComment,
    ReviewCommentCache,
    comments_at_range,
    update_description_body,
)
from chatgpt_pr_reviewer.config import Options

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileDiff:
    filename: str
    patch: str = ''


@dataclass(frozen=True)
class Comparison:
    """Files changed between two commits and the newest commit compared."""

    files: list[FileDiff]
    head_commit_sha: str


@dataclass(frozen=True)
class PullRequestInfo:
    number: int
    title: str
    body: str
    base_sha: str
    head_sha: str


@dataclass(frozen=True)
class ReviewItem:
    """An inline comment ready to be posted."""

    filename: str
    start_line: int
    end_line: int
    comment_text: str


class GitHubClient:
    """
    Read and write the pull request under review.

    Parameters
    ----------
    options:
        Run options holding the token, repository and PR number.
    gh:
        PyGithub client; built from the token when omitted.
    """

    def __init__(self, options: Options, gh: Any = None) -> None:
        self.options = options
        self.repo_name = options.repository
        self.pr_number = options.pr_id
        self.gh_headers = {
            'Authorization': f'token {options.github_token}',
            'Accept': 'application/vnd.github.raw+json',
        }
        self.gh_api = gh or Github(
            auth=Auth.Token(options.github_token),
            base_url=options.api_url,
        )
        self._repo: Any = None
        self._pull: Any = None
        self._issue_comments: list[IssueComment] | None = None
        self.review_comments = ReviewCommentCache(self._load_review_comments)

    @property
    def repo(self) -> Any:
        if self._repo is None:
            self._repo = self.gh_api.get_repo(self.repo_name)
        return self._repo

    @property
    def pull(self) -> Any:
        if self._pull is None:
            self._pull = self.repo.get_pull(self.pr_number)
        return self._pull

    def pull_request(self) -> PullRequestInfo:
        pr = self.pull
        return PullRequestInfo(
            number=pr.number,
            title=pr.title or '',
            body=pr.body or '',
            base_sha=pr.base.sha,
            head_sha=pr.head.sha,
        )

    def list_commit_shas(self) -> list[str]:
        """Return the PR's commit shas, oldest first."""
        return [commit.sha for commit in self.pull.get_commits()]

    def compare(self, base: str, head: str) -> Comparison:
        """
        List files changed between ``base`` and ``head``.

        Raises
        ------
        github.GithubException
            If the comparison cannot be fetched.
        """
        comparison = self.repo.compare(base, head)
        files = [
            FileDiff(filename=f.filename, patch=f.patch or '')
            for f in comparison.files
        ]
        commits = list(comparison.commits)
        head_commit = commits[-1].sha if commits else head
        return Comparison(files=files, head_commit_sha=head_commit)

    def file_content(self, path: str, ref: str) -> str:
        """
        Fetch a file's raw content at ``ref``.

        Returns an empty string when the file does not exist at ``ref``.

        Raises
        ------
        RuntimeError
            On any other GitHub API error.
        """
        url = (
            f'{self.options.api_url}/repos/{self.repo_name}/contents/'
            f'{quote(path)}'
        )
        try:
            resp = requests.get(
                url,
                headers=self.gh_headers,
                params={'ref': ref},
                timeout=60,
            )
        except Exception as exc:
            logger.exception('GitHub request failed: %s', exc)
            raise
        if resp.status_code == 404:
            return ''
        if resp.status_code != 200:
            logger.error(
                'GitHub API error %s: %s', resp.status_code, resp.text[:500]
            )
            raise RuntimeError(
                f'GitHub API error {resp.status_code}: {resp.text}'
            )
        return resp.text or ''

    def _load_review_comments(self, pr_number: int) -> list[ReviewComment]:
        if pr_number == self.pr_number:
            pr = self.pull
        else:
            pr = self.repo.get_pull(pr_number)
        return [ReviewComment.from_api(c) for c in pr.get_review_comments()]

    def list_review_comments(self) -> list[ReviewComment]:
        """
        Return the PR's review comments, loaded once per run.

        Raises
        ------
        github.GithubException
            If the comments cannot be listed; nothing is cached then.
        """
        return self.review_comments.get(self.pr_number)

    def list_issue_comments(self) -> list[IssueComment]:
        if self._issue_comments is None:
            comments = self.pull.get_issue_comments()
            self._issue_comments = [IssueComment.from_api(c) for c in comments]
        return self._issue_comments

    def find_issue_comment_with_tag(self, tag: str) -> IssueComment | None:
        try:
            for comment in self.list_issue_comments():
                if tag in comment.body:
                    return comment
        except Exception as exc:
            logger.warning('Failed to find comment with tag: %s', exc)
        return None

    def upsert_issue_comment(self, body: str, tag: str) -> None:
        """Replace the issue comment carrying ``tag`` or create one."""
        existing = self.find_issue_comment_with_tag(tag)
        try:
            if existing is not None:
                self.pull.get_issue_comment(existing.id).edit(body)
            else:
                self.pull.create_issue_comment(body)
        except Exception as exc:
            logger.exception('Failed to post PR comment: %s', exc)

    def post_review_comment(self, item: ReviewItem, commit_id: str) -> None:
        """
        Post one inline comment, updating the bot's earlier comment at the
        same range when there is one.

        Raises
        ------
        github.GithubException
            If GitHub rejects the comment.
        """
        existing = comments_at_range(
            self.list_review_comments(),
            item.filename,
            item.start_line,
            item.end_line,
        )
        for comment in existing:
            if COMMENT_TAG in comment.body:
                logger.info(
                    'Updating review comment for %s:%s-%s',
                    item.filename,
                    item.start_line,
                    item.end_line,
                )
                self.pull.get_review_comment(comment.id).edit(
                    item.comment_text
                )
                return

        logger.info(
            'Creating new review comment for %s:%s-%s',
            item.filename,
            item.start_line,
            item.end_line,
        )
        kwargs: dict[str, Any] = {'line': item.end_line, 'side': 'RIGHT'}
        if item.start_line != item.end_line:
            kwargs['start_line'] = item.start_line
            kwargs['start_side'] = 'RIGHT'
        self.pull.create_review_comment(
            item.comment_text,
            commit_id,
            item.filename,
            **kwargs,
        )

    def update_description(self, message: str) -> None:
        """Write release notes into the PR description."""
        try:
            self.pull.edit(
                body=update_description_body(self.pull.body or '', message)
            )
        except Exception as exc:
            logger.warning(
                'Failed to update PR description: %s, skipping adding '
                'release notes.',
                exc,
            )
