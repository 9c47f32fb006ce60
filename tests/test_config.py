import pytest

from chatgpt_pr_reviewer.config import (
    DEFAULT_SYSTEM_MESSAGE,
    Options,
    normalize_reasoning_effort,
    prepare_extra_criteria,
    split_globs,
)
from chatgpt_pr_reviewer.tokens import (
    REQUEST_MARGIN_TOKENS,
    TokenLimits,
    estimate_tokens,
    model_limits,
)

BASE_ENV = {
    'GITHUB_TOKEN': 'ghp_test',
    'GITHUB_REPOSITORY': 'octo/repo',
    'GITHUB_PR_ID': '42',
}


@pytest.mark.parametrize('missing', sorted(BASE_ENV))
def test_required_variables(missing):
    env = {k: v for k, v in BASE_ENV.items() if k != missing}
    with pytest.raises(RuntimeError, match=missing):
        Options.from_env(env)


def test_pr_id_must_be_numeric():
    with pytest.raises(RuntimeError):
        Options.from_env({**BASE_ENV, 'GITHUB_PR_ID': 'abc'})


def test_defaults():
    options = Options.from_env(BASE_ENV)

    assert options.pr_id == 42
    assert options.repository == 'octo/repo'
    assert options.light_model == 'gpt-4o-mini'
    assert options.heavy_model == 'gpt-4o'
    assert options.max_files == 60
    assert options.concurrency_limit == 4
    assert options.summary_only is False
    assert options.system_message == DEFAULT_SYSTEM_MESSAGE


def test_overrides():
    options = Options.from_env(
        {
            **BASE_ENV,
            'OPENAI_HEAVY_MODEL': 'o3-mini',
            'OPENAI_REASONING': 'bogus',
            'OPENAI_CONCURRENCY_LIMIT': '0',
            'MAX_FILES': 'many',
            'EXCLUDE_PATH': '*.lock; docs/**',
            'SUMMARY_ONLY': 'true',
            'PROMPT_PROJECT_INTRODUCTION': 'A payments service.',
            'PROMPT_EXTRA_CRITERIA': 'no prints; - no sleeps',
        }
    )

    assert options.reasoning_mode == 'auto'
    assert options.reasoning_effort == 'low'
    assert options.concurrency_limit == 1
    assert options.max_files == 60
    assert options.exclude_globs == ['*.lock', 'docs/**']
    assert options.summary_only is True
    assert options.system_message.startswith('A payments service.\n\n')
    assert options.system_message.endswith('- no prints\n- no sleeps\n')


def test_split_globs():
    assert split_globs('a/*,b/*;\nc/*\r\n , ') == ['a/*', 'b/*', 'c/*']
    assert split_globs('') == []


def test_prepare_extra_criteria():
    assert prepare_extra_criteria('x; - y ;') == '- x\n- y'
    assert prepare_extra_criteria('') == ''


def test_check_path():
    options = Options(
        github_token='t',
        repository='o/r',
        pr_id=1,
        include_globs=['src/*'],
        exclude_globs=['*.lock'],
    )

    assert options.check_path('src/app.py')
    assert not options.check_path('src/poetry.lock')
    assert not options.check_path('docs/index.md')


def test_want_reasoning():
    options = Options(github_token='t', repository='o/r', pr_id=1)

    assert options.want_reasoning('o3-mini')
    assert not options.want_reasoning('gpt-4o')
    options.reasoning_mode = 'on'
    assert not options.want_reasoning('gpt-4o')
    options.reasoning_mode = 'off'
    assert not options.want_reasoning('o3-mini')


def test_normalize_reasoning_effort():
    assert normalize_reasoning_effort('', 'gpt-5') == 'none'
    assert normalize_reasoning_effort('HIGH', 'gpt-4o') == 'high'
    assert normalize_reasoning_effort('max', 'gpt-4o') == 'low'


def test_token_limits():
    limits = TokenLimits.for_model('gpt-3.5-turbo')

    assert (limits.max_tokens, limits.response_tokens) == (4_096, 2_048)
    assert limits.request_tokens == 4_096 - 2_048 - REQUEST_MARGIN_TOKENS

    custom = TokenLimits.for_model('unknown', 10_000, 1_000)
    assert custom.request_tokens == 10_000 - 1_000 - REQUEST_MARGIN_TOKENS


def test_model_limits_fallback():
    assert model_limits('my-local-model') == (128_000, 16_384)


def test_estimate_tokens():
    assert estimate_tokens('') == 0
    assert estimate_tokens('a') == 1
    assert estimate_tokens('a' * 35) == 10
