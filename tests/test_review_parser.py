import pytest

from chatgpt_pr_reviewer.review_parser import (
    ParsedComment,
    ReviewParser,
    State,
    Token,
    TokenKind,
    best_overlap,
    parse_review,
    sanitize_comment,
    tokenize_response,
)

EXAMPLE_RESPONSE = """3-3:
There's a typo.
```suggestion
5: return z
```
---
5-6:
LGTM!
---
"""


def test_parse_example_response():
    comments = parse_review(EXAMPLE_RESPONSE, [(1, 6)])

    assert comments == [
        ParsedComment(
            3, 3, "There's a typo.\n```suggestion\nreturn z\n```"
        ),
        ParsedComment(5, 6, 'LGTM!'),
    ]


def test_out_of_range_comment_without_overlap_goes_to_first_hunk():
    comments = parse_review('10-12:\nOff by one.\n', [(1, 5), (20, 30)])

    assert len(comments) == 1
    comment = comments[0]
    assert (comment.start_line, comment.end_line) == (1, 5)
    assert '10-12' in comment.comment
    assert comment.comment.endswith('Off by one.')


def test_out_of_range_comment_goes_to_largest_overlap():
    comments = parse_review('4-8:\nCheck this.\n', [(1, 5), (6, 30)])

    assert (comments[0].start_line, comments[0].end_line) == (6, 30)
    assert 'Original lines [4-8]' in comments[0].comment


def test_overlap_tie_keeps_first_hunk():
    assert best_overlap(4, 7, [(1, 5), (6, 10)]) == ((1, 5), False)


def test_comment_inside_later_hunk_is_kept():
    comments = parse_review('22-25:\nFine.\n', [(1, 5), (20, 30)])
    assert comments == [ParsedComment(22, 25, 'Fine.')]


def test_text_outside_sections_is_discarded():
    response = 'Here is my review:\n1-2:\nBug.\n---\ntrailing chatter\n'
    assert parse_review(response, [(1, 2)]) == [ParsedComment(1, 2, 'Bug.')]


def test_open_comment_is_flushed_at_end_and_by_next_header():
    response = '1-1:\nfirst\n2-2:\nsecond'
    comments = parse_review(response, [(1, 2)])
    assert [c.comment for c in comments] == ['first', 'second']


def test_empty_comment_is_still_emitted():
    assert parse_review('3-4:\n---\n', [(1, 9)]) == [
        ParsedComment(3, 4, '')
    ]


def test_range_header_may_follow_text_on_the_line():
    comments = parse_review('Lines 3-4:\nHmm.\n', [(1, 9)])
    assert comments == [ParsedComment(3, 4, 'Hmm.')]


def test_no_known_ranges_keeps_range():
    assert parse_review('7-8:\nok\n', []) == [ParsedComment(7, 8, 'ok')]


def test_tokenizer_classifies_lines():
    tokens = list(tokenize_response('1-2:\nbody\n  ---  \n'))

    assert [t.kind for t in tokens] == [
        TokenKind.RANGE,
        TokenKind.TEXT,
        TokenKind.SEPARATOR,
        TokenKind.TEXT,
    ]
    assert (tokens[0].start, tokens[0].end) == (1, 2)


def test_state_transitions():
    parser = ReviewParser([(1, 10)])

    assert parser.feed(Token(TokenKind.TEXT, 'ignored')) is State.IDLE
    assert parser.feed(Token(TokenKind.RANGE, '', 1, 2)) is State.OPEN
    assert parser.feed(Token(TokenKind.TEXT, 'body')) is State.OPEN
    assert parser.feed(Token(TokenKind.RANGE, '', 3, 4)) is State.OPEN
    assert parser.feed(Token(TokenKind.SEPARATOR, '---')) is State.IDLE
    assert parser.feed(Token(TokenKind.SEPARATOR, '---')) is State.IDLE
    assert [(c.start_line, c.comment) for c in parser.comments] == [
        (1, 'body'),
        (3, ''),
    ]


@pytest.mark.parametrize(
    'text',
    [
        'No code here.',
        '```python\n1: x = 1\n```',
        'Keep 12: this line\n```suggestion\nx\n```',
        '```suggestion\n3: never closed',
    ],
)
def test_sanitize_leaves_other_text_alone(text):
    assert sanitize_comment(text) == text


def test_sanitize_strips_every_suggestion_block():
    text = (
        '```suggestion\n  3:     a = 1\n4: b = 2\n```\n'
        'between 5: x\n'
        '```suggestion\n10: c = 3\n```'
    )
    assert sanitize_comment(text) == (
        '```suggestion\n    a = 1\nb = 2\n```\n'
        'between 5: x\n'
        '```suggestion\nc = 3\n```'
    )


def test_debug_logs_transitions(caplog):
    with caplog.at_level('INFO'):
        parse_review('1-1:\nx\n---\n', [(1, 1)], debug=True)
    assert 'Found line number range: 1-1' in caplog.text
    assert 'Found comment separator' in caplog.text
