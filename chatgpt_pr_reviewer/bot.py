"""OpenAI chat client keeping a conversation across calls."""

from __future__ import annotations

import logging

from typing import Any

from openai import OpenAI

from chatgpt_pr_reviewer.config import Options
from chatgpt_pr_reviewer.tokens import (
    TokenLimits,
    is_reasoning_model,
    model_limits,
)

logger = logging.getLogger(__name__)

# Conversation state handed back and forth by callers. Responses API
# threads use ``previous_response_id``, Chat Completions threads carry
# their ``messages``.
ConversationState = dict[str, Any]


def check_openai_sdk(client: Any) -> tuple[bool, str]:
    """
    Check if the openai SDK version supports required features.

    Returns
    -------
    tuple[bool, str]
        (has_responses_api, version_string).
    """
    try:
        import openai  # noqa: PLC0415

        version = getattr(openai, '__version__', '0.0.0')
        return hasattr(client, 'responses'), version
    except ImportError:
        return False, 'unknown'


def log_chat_meta(obj: Any) -> None:
    """Log token usage and finish reasons of a chat completion."""
    usage = getattr(obj, 'usage', None)
    if usage:
        logger.debug(
            'Chat usage: prompt=%s completion=%s total=%s',
            getattr(usage, 'prompt_tokens', None),
            getattr(usage, 'completion_tokens', None),
            getattr(usage, 'total_tokens', None),
        )
    choices = list(getattr(obj, 'choices', []) or [])
    finish = [getattr(c, 'finish_reason', None) for c in choices]
    logger.debug('Chat finish_reasons: %s', finish)


def log_responses_meta(rsp: Any) -> None:
    """Log token usage and status of a Responses API object."""
    usage = getattr(rsp, 'usage', None)
    if usage:
        logger.debug(
            'Resp usage: input=%s output=%s total=%s',
            getattr(usage, 'input_tokens', None),
            getattr(usage, 'output_tokens', None),
            getattr(usage, 'total_tokens', None),
        )
    logger.debug(
        'Resp status=%s id=%s',
        getattr(rsp, 'status', None),
        getattr(rsp, 'id', None),
    )


def responses_text(rsp: Any) -> str:
    """
    Extract visible text from a Responses API object.

    Parameters
    ----------
    rsp:
        Responses API object.

    Returns
    -------
    str
        Visible output text (may be empty).
    """
    text = getattr(rsp, 'output_text', '') or ''
    if text:
        return text

    pieces: list[str] = []
    for item in getattr(rsp, 'output', None) or []:
        for block in getattr(item, 'content', None) or []:
            s = getattr(block, 'text', '')
            if s:
                pieces.append(s)
    return ''.join(pieces)


def is_incomplete_due_to_tokens(rsp: Any) -> bool:
    """
    Return True if the response looks incomplete due to token limits.

    Parameters
    ----------
    rsp:
        Responses API object.

    Returns
    -------
    bool
        True if incomplete and likely token-limited.
    """
    status = (getattr(rsp, 'status', '') or '').lower()
    if status != 'incomplete':
        return False

    details = getattr(rsp, 'incomplete_details', None)
    if details is None:
        return True

    reason = getattr(details, 'reason', None)
    if reason is None and isinstance(details, dict):
        reason = details.get('reason')
    if reason is None:
        return True

    return str(reason).lower() in {'max_output_tokens', 'length'}


class Bot:
    """
    Chat with one OpenAI model.

    Parameters
    ----------
    options:
        Run options (temperature, reasoning settings, system message).
    model:
        Model name.
    client:
        OpenAI client; a default one is created when omitted.
    """

    def __init__(
        self,
        options: Options,
        model: str,
        client: Any = None,
    ) -> None:
        self.options = options
        self.model = model
        self.limits = TokenLimits.for_model(
            model, options.max_input_tokens, options.max_output_tokens
        )
        self._openai: Any = client if client is not None else OpenAI()
        self._has_responses_api, version = check_openai_sdk(self._openai)
        logger.info('OpenAI SDK version: %s', version)
        if not self._has_responses_api:
            logger.warning(
                'OpenAI SDK does not support Responses API. '
                'Reasoning models will use Chat Completions fallback. '
                'Consider upgrading: pip install --upgrade openai'
            )

    def _use_responses_api(self) -> bool:
        return self._has_responses_api and self.options.want_reasoning(
            self.model
        )

    def chat(
        self, prompt: str, state: ConversationState | None = None
    ) -> tuple[str, ConversationState]:
        """
        Send ``prompt`` within the conversation described by ``state``.

        Parameters
        ----------
        prompt:
            User message.
        state:
            Conversation state returned by an earlier call, or None to
            start a new conversation.

        Returns
        -------
        tuple[str, ConversationState]
            (answer text, state to continue the conversation with). The
            text is empty when the model returned nothing usable.
        """
        state = dict(state or {})
        if self._use_responses_api():
            return self._chat_responses(prompt, state)
        try:
            return self._chat_completions(prompt, state)
        except Exception as exc:
            msg = str(exc)
            # Handle specific error about max_tokens vs max_completion_tokens
            if 'max_tokens' in msg and 'max_completion_tokens' in msg:
                logger.info(
                    'Retrying with max_completion_tokens due to API hint'
                )
                return self._chat_completions(
                    prompt, state, use_completion_tokens=True
                )
            raise

    def _chat_completions(
        self,
        prompt: str,
        state: ConversationState,
        *,
        use_completion_tokens: bool = False,
    ) -> tuple[str, ConversationState]:
        is_reasoning = is_reasoning_model(self.model)
        gpt_args: dict[str, Any] = {'model': self.model}

        # Reasoning models require max_completion_tokens and don't support
        # temperature
        if is_reasoning or use_completion_tokens:
            gpt_args['max_completion_tokens'] = self.limits.response_tokens
        else:
            gpt_args['max_tokens'] = self.limits.response_tokens
            gpt_args['temperature'] = self.options.temperature

        history = list(state.get('messages') or [])
        if not history:
            role = 'user' if is_reasoning else 'system'
            history.append(
                {'role': role, 'content': self.options.system_message}
            )
        history.append({'role': 'user', 'content': prompt})
        gpt_args['messages'] = history

        logger.info(
            'Chat API call: model=%s reasoning=%s',
            self.model,
            is_reasoning,
        )
        logger.debug(
            'GPT params (excluding messages): %s',
            {k: v for k, v in gpt_args.items() if k != 'messages'},
        )

        try:
            completion = self._openai.chat.completions.create(**gpt_args)
        except Exception as exc:
            logger.exception('Chat completion failed: %s', exc)
            raise

        log_chat_meta(completion)
        text = (completion.choices[0].message.content or '').strip()
        messages = history + [{'role': 'assistant', 'content': text}]
        return text, {'messages': messages}

    def _responses_create(
        self,
        prompt: str,
        state: ConversationState,
        *,
        max_output_tokens: int,
    ) -> Any:
        gpt_args: dict[str, Any] = {
            'model': self.model,
            'max_output_tokens': max_output_tokens,
            'instructions': self.options.system_message,
            'input': [{'role': 'user', 'content': prompt}],
        }
        if self.options.reasoning_effort != 'none':
            gpt_args['reasoning'] = {'effort': self.options.reasoning_effort}
        if state.get('previous_response_id'):
            gpt_args['previous_response_id'] = state['previous_response_id']

        logger.info(
            'Responses API call: model=%s reasoning_effort=%s',
            self.model,
            self.options.reasoning_effort,
        )
        return self._openai.responses.create(**gpt_args)

    def _chat_responses(
        self, prompt: str, state: ConversationState
    ) -> tuple[str, ConversationState]:
        max_output = self.limits.response_tokens
        try:
            rsp = self._responses_create(
                prompt, state, max_output_tokens=max_output
            )
        except Exception as exc:
            logger.exception('Responses API call failed: %s', exc)
            raise

        log_responses_meta(rsp)
        text = responses_text(rsp).strip()

        _, out_default = model_limits(self.model)
        can_retry = max_output < out_default
        if not text and is_incomplete_due_to_tokens(rsp) and can_retry:
            bumped = min(out_default, max_output * 2)
            logger.warning(
                'Incomplete response; retrying with max_output_tokens=%s',
                bumped,
            )
            rsp = self._responses_create(
                prompt, state, max_output_tokens=bumped
            )
            log_responses_meta(rsp)
            text = responses_text(rsp).strip()

        return text, {'previous_response_id': getattr(rsp, 'id', None)}
