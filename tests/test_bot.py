from types import SimpleNamespace

import pytest

from chatgpt_pr_reviewer.bot import Bot, is_incomplete_due_to_tokens
from chatgpt_pr_reviewer.config import Options


class FakeCompletions:
    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        message = SimpleNamespace(content=answer)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=message, finish_reason='stop')],
            usage=None,
        )


class FakeResponses:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.responses.pop(0)


@pytest.fixture
def options():
    return Options(
        github_token='t',
        repository='o/r',
        pr_id=1,
        system_message='Be terse.',
    )


def _chat_client(answers):
    completions = FakeCompletions(answers)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_chat_completions_keeps_history(options):
    client = _chat_client(['First answer', 'Second answer'])
    bot = Bot(options, 'gpt-4o', client=client)

    text, state = bot.chat('Summarize', {})
    text2, state2 = bot.chat('Now release notes', state)

    assert (text, text2) == ('First answer', 'Second answer')
    calls = client.chat.completions.calls
    assert calls[0]['messages'] == [
        {'role': 'system', 'content': 'Be terse.'},
        {'role': 'user', 'content': 'Summarize'},
    ]
    assert calls[1]['messages'][-2:] == [
        {'role': 'assistant', 'content': 'First answer'},
        {'role': 'user', 'content': 'Now release notes'},
    ]
    assert calls[0]['max_tokens'] == bot.limits.response_tokens
    assert len(state2['messages']) == 5


def test_chat_completions_retries_with_completion_tokens(options):
    error = RuntimeError(
        "Unsupported parameter: 'max_tokens'; use 'max_completion_tokens'"
    )
    client = _chat_client([error, 'ok'])
    bot = Bot(options, 'gpt-4o', client=client)

    text, _ = bot.chat('hi')

    assert text == 'ok'
    assert 'max_completion_tokens' in client.chat.completions.calls[1]


def test_chat_errors_propagate(options):
    bot = Bot(options, 'gpt-4o', client=_chat_client([ValueError('boom')]))
    with pytest.raises(ValueError):
        bot.chat('hi')


def test_responses_api_threads_previous_response(options):
    responses = FakeResponses(
        [
            SimpleNamespace(
                id='resp_1', output_text='one', status='completed'
            ),
            SimpleNamespace(
                id='resp_2', output_text='two', status='completed'
            ),
        ]
    )
    client = SimpleNamespace(responses=responses)
    bot = Bot(options, 'o3-mini', client=client)

    text, state = bot.chat('first')
    text2, _ = bot.chat('second', state)

    assert (text, text2) == ('one', 'two')
    assert state == {'previous_response_id': 'resp_1'}
    assert 'previous_response_id' not in responses.calls[0]
    assert responses.calls[1]['previous_response_id'] == 'resp_1'
    assert responses.calls[0]['reasoning'] == {'effort': 'low'}


INCOMPLETE = SimpleNamespace(
    id='r1',
    output_text='',
    status='incomplete',
    incomplete_details=SimpleNamespace(reason='max_output_tokens'),
)


def test_responses_api_retries_incomplete_output(options):
    options.max_output_tokens = 60_000
    complete = SimpleNamespace(id='r2', output_text='done', status='completed')
    responses = FakeResponses([INCOMPLETE, complete])
    bot = Bot(options, 'o3-mini', client=SimpleNamespace(responses=responses))

    text, state = bot.chat('review')

    assert text == 'done'
    assert state == {'previous_response_id': 'r2'}
    first, second = responses.calls
    assert first['max_output_tokens'] == 60_000
    # doubled, but never past the model's output limit
    assert second['max_output_tokens'] == 100_000


def test_responses_api_no_retry_at_model_limit(options):
    responses = FakeResponses([INCOMPLETE])
    bot = Bot(options, 'o3-mini', client=SimpleNamespace(responses=responses))

    text, state = bot.chat('review')

    assert text == ''
    assert state == {'previous_response_id': 'r1'}
    assert len(responses.calls) == 1
    assert responses.calls[0]['max_output_tokens'] == 100_000


def test_is_incomplete_due_to_tokens():
    assert not is_incomplete_due_to_tokens(SimpleNamespace(status='completed'))
    assert is_incomplete_due_to_tokens(
        SimpleNamespace(status='incomplete', incomplete_details=None)
    )
    assert not is_incomplete_due_to_tokens(
        SimpleNamespace(
            status='incomplete',
            incomplete_details={'reason': 'content_filter'},
        )
    )
