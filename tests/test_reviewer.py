import threading

import pytest

from chatgpt_pr_reviewer import reviewer as reviewer_module
from chatgpt_pr_reviewer.comments import (
    COMMENT_TAG,
    SUMMARIZE_TAG,
    IssueComment,
)
from chatgpt_pr_reviewer.commits import append_reviewed, extract_reviewed
from chatgpt_pr_reviewer.config import Options
from chatgpt_pr_reviewer.github_client import (
    Comparison,
    FileDiff,
    PullRequestInfo,
)
from chatgpt_pr_reviewer.prompts import NO_FILE_CONTENT
from chatgpt_pr_reviewer.reviewer import PullRequestReviewer

APP_PATCH = (
    '@@ -1,2 +1,3 @@\n'
    ' def add(x, y):\n'
    '-    return x+y\n'
    '+    z = x+y\n'
    '+    retrn z\n'
)
UTIL_PATCH = '@@ -10,1 +10,2 @@\n a = 1\n+b = 2\n'

REVIEW_ANSWER = """3-3:
Typo in the return statement.
```suggestion
3:     return z
```
---
1-2:
LGTM!
---
40-41:
Unrelated remark.
---
"""


class FakeGitHub:
    def __init__(self, files, summary_body=''):
        self.files = files
        self.summary_body = summary_body
        self.compared = []
        self.posted = []
        self.upserts = []
        self.descriptions = []
        self.fail_posts_for = set()
        self._lock = threading.Lock()

    def pull_request(self):
        return PullRequestInfo(
            number=7,
            title='Add adder',
            body='Adds an adder.',
            base_sha='base',
            head_sha='c2',
        )

    def find_issue_comment_with_tag(self, tag):
        if self.summary_body:
            return IssueComment(id=1, body=self.summary_body)
        return None

    def list_commit_shas(self):
        return ['c1', 'c2']

    def compare(self, base, head):
        self.compared.append((base, head))
        return Comparison(files=self.files, head_commit_sha=head)

    def file_content(self, path, ref):
        if path == 'missing.py':
            raise RuntimeError('404')
        return 'def add(x, y):\n    return x+y\n'

    def list_review_comments(self):
        return []

    def post_review_comment(self, item, commit_id):
        if item.filename in self.fail_posts_for:
            raise RuntimeError('422 Unprocessable Entity')
        with self._lock:
            self.posted.append((item, commit_id))

    def upsert_issue_comment(self, body, tag):
        self.upserts.append((body, tag))

    def update_description(self, message):
        self.descriptions.append(message)


class FakeBot:
    def __init__(self, review_answer=REVIEW_ANSWER, fail_for=()):
        self.review_answer = review_answer
        self.fail_for = set(fail_for)
        self.prompts = []

    def chat(self, prompt, state=None):
        self.prompts.append(prompt)
        for name in self.fail_for:
            if f'`{name}`' in prompt:
                raise RuntimeError(f'model error for {name}')
        if 'Changes for review are below' in prompt:
            return self.review_answer, {}
        if '[TRIAGE]' in prompt:
            if '`README.md`' in prompt:
                return 'Docs only.\n[TRIAGE]: APPROVED', {}
            return 'Adds an adder.\n[TRIAGE]: NEEDS_REVIEW', {}
        if 'release notes' in prompt:
            return '- New Feature: adder', {'previous_response_id': 'r2'}
        if 'de-deduplicate' in prompt:
            return '---\napp.py: Adds an adder.', {}
        return 'Final summary', {'previous_response_id': 'r1'}


@pytest.fixture
def options():
    return Options(
        github_token='t',
        repository='o/r',
        pr_id=7,
        concurrency_limit=2,
        exclude_globs=['*.lock'],
    )


def _reviewer(options, github, bot=None):
    bot = bot or FakeBot()
    return PullRequestReviewer(options, github, bot, bot)


def test_full_run(options):
    github = FakeGitHub(
        [
            FileDiff('app.py', APP_PATCH),
            FileDiff('poetry.lock', APP_PATCH),
            FileDiff('README.md', UTIL_PATCH),
        ]
    )

    result = _reviewer(options, github).run()

    assert github.compared == [('base', 'c2')]
    assert result.report.ignored_files == ['poetry.lock']
    assert result.report.reviews_skipped == ['README.md']

    # LGTM comments are dropped; the out-of-hunk one is moved onto the hunk
    assert [(i.start_line, i.end_line) for i in result.review_items] == [
        (3, 3),
        (1, 3),
    ]
    first, second = result.review_items
    assert '```suggestion\n    return z\n```' in first.comment_text
    assert 'Original lines [40-41]' in second.comment_text

    assert len(github.posted) == 2
    item, commit_id = github.posted[0]
    assert commit_id == 'c2'
    assert item.comment_text.endswith(COMMENT_TAG)

    assert extract_reviewed(result.marker_block) == {'c2'}
    body, tag = github.upserts[0]
    assert tag == SUMMARIZE_TAG
    assert body.endswith(SUMMARIZE_TAG)
    assert 'Final summary' in body
    assert 'commit_ids_reviewed_start' in body
    assert github.descriptions == [
        '### Summary by OpenAI\n\n- New Feature: adder'
    ]


def test_incremental_run_diffs_from_last_reviewed_commit(options):
    summary = append_reviewed('Old summary', 'c1')
    github = FakeGitHub([FileDiff('app.py', APP_PATCH)], summary)

    result = _reviewer(options, github).run()

    assert github.compared == [('c1', 'c2')]
    assert extract_reviewed(result.marker_block) == {'c1', 'c2'}


def test_head_already_reviewed_rediffs_from_base(options):
    summary = append_reviewed('Old summary', 'c2')
    github = FakeGitHub([FileDiff('app.py', APP_PATCH)], summary)

    _reviewer(options, github).run()

    assert github.compared == [('base', 'c2')]


def test_failures_are_isolated_per_file(options):
    github = FakeGitHub(
        [FileDiff('app.py', APP_PATCH), FileDiff('util.py', UTIL_PATCH)]
    )
    bot = FakeBot(review_answer='10-11:\nConsider a constant.\n---\n')
    bot.fail_for = {'app.py'}

    result = _reviewer(options, github, bot).run()

    report = result.report
    assert [s.split(' ')[0] for s in report.summaries_failed] == ['app.py']
    assert [s.split(' ')[0] for s in report.reviews_failed] == ['app.py']
    assert [i.filename for i in result.review_items] == ['util.py']


def test_failed_comment_post_is_recorded(options):
    github = FakeGitHub([FileDiff('app.py', APP_PATCH)])
    github.fail_posts_for = {'app.py'}

    result = _reviewer(options, github).run()

    assert github.posted == []
    assert result.report.reviews_failed == [
        'app.py comment failed (422 Unprocessable Entity)',
    ] * 2
    assert 'Files not reviewed due to errors in this run (2)' in (
        github.upserts[0][0]
    )


def test_max_files_cap(options):
    options.max_files = 1
    github = FakeGitHub(
        [FileDiff('app.py', APP_PATCH), FileDiff('util.py', UTIL_PATCH)]
    )

    result = _reviewer(options, github).run()

    assert result.report.skipped_files == ['util.py']


def test_oversized_diff_is_recorded_not_dropped(options):
    options.max_input_tokens = 200
    options.max_output_tokens = 50
    big_patch = '@@ -1,1 +1,200 @@\n' + '+x = 1\n' * 200
    github = FakeGitHub([FileDiff('big.py', big_patch)])

    result = _reviewer(options, github).run()

    assert result.report.summaries_failed == [
        'big.py (diff tokens exceeds limit)'
    ]
    assert result.report.reviews_failed == [
        'big.py (diff tokens exceeds limit)'
    ]


def test_summary_only_posts_no_comments(options):
    options.summary_only = True
    github = FakeGitHub([FileDiff('app.py', APP_PATCH)])

    result = _reviewer(options, github).run()

    assert result.review_items == []
    assert github.posted == []
    assert 'commit_ids_reviewed_start' not in github.upserts[0][0]


def test_ignore_keyword_skips_run(options):
    github = FakeGitHub([FileDiff('app.py', APP_PATCH)])
    github.pull_request = lambda: PullRequestInfo(
        7, 'T', 'WIP @openai: ignore', 'base', 'c2'
    )

    assert _reviewer(options, github).run() is None
    assert github.compared == []


def test_missing_file_content_still_reviews(options):
    github = FakeGitHub([FileDiff('missing.py', APP_PATCH)])

    result = _reviewer(options, github).run()

    assert [i.filename for i in result.review_items] == [
        'missing.py',
        'missing.py',
    ]


def test_budget_counts_the_no_content_placeholder(options, monkeypatch):
    base_prompts = []

    def recording(real):
        def wrapper(*args, **kwargs):
            base_prompts.append(kwargs['base_prompt'])
            return real(*args, **kwargs)

        return wrapper

    monkeypatch.setattr(
        reviewer_module,
        'pack_summary',
        recording(reviewer_module.pack_summary),
    )
    monkeypatch.setattr(
        reviewer_module,
        'pack_sections',
        recording(reviewer_module.pack_sections),
    )
    github = FakeGitHub([FileDiff('app.py', APP_PATCH)])

    _reviewer(options, github).run()

    # the prompt sent without file content is the one counted for budget
    assert len(base_prompts) == 2
    assert all(NO_FILE_CONTENT in prompt for prompt in base_prompts)
