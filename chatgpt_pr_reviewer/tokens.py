"""Token estimates and per-model token budgets."""

from __future__ import annotations

from dataclasses import dataclass

# Headroom kept free in every request for message framing.
REQUEST_MARGIN_TOKENS = 100


def estimate_tokens(text: str, chars_per_token: float = 3.5) -> int:
    """
    Return a rough token estimate for a string.

    Uses a slightly more conservative estimate for code (3.5 chars/token)
    compared to prose (4 chars/token). Empty text costs nothing.

    Parameters
    ----------
    text:
        Input text.
    chars_per_token:
        Average characters per token (default 3.5 for code).

    Returns
    -------
    int
        Approximate token count.
    """
    if not text:
        return 0
    return max(1, int(len(text) / chars_per_token))


def is_reasoning_model(model: str) -> bool:
    """Return True if the model name suggests reasoning capability."""
    m = model.lower()
    return m.startswith(('o1', 'o2', 'o3', 'o4', 'o-')) or m.startswith(
        'gpt-5'
    )


def model_limits(model: str) -> tuple[int, int]:
    """
    Return default (context_max, max_output_tokens) for known models.

    Parameters
    ----------
    model:
        Model name.

    Returns
    -------
    tuple[int, int]
        (context_max, max_output_tokens). Unknown models fall back to
        (128_000, 16_384).
    """
    m = model.lower()

    if m.startswith('gpt-5-chat-latest'):
        return 128_000, 16_384
    if m.startswith('gpt-5'):
        return 400_000, 128_000

    if m.startswith('gpt-4.1'):
        return 1_047_576, 32_768

    if m.startswith('chatgpt-4o-latest'):
        return 128_000, 16_384
    if m.startswith('gpt-4o'):
        return 128_000, 16_384

    if m.startswith(('o3', 'o1')):
        return 200_000, 100_000

    if m.startswith('gpt-4-32k'):
        return 32_600, 4_000
    if m.startswith('gpt-4'):
        return 8_000, 2_000

    if m.startswith('gpt-3.5-turbo-16k'):
        return 16_000, 4_096
    if m.startswith('gpt-3.5-turbo'):
        return 4_096, 2_048

    return 128_000, 16_384


@dataclass(frozen=True)
class TokenLimits:
    """Token budget of one model: whole context, reply and request."""

    model: str
    max_tokens: int
    response_tokens: int

    @property
    def request_tokens(self) -> int:
        """Tokens available for the prompt of a single request."""
        return max(
            0,
            self.max_tokens - self.response_tokens - REQUEST_MARGIN_TOKENS,
        )

    @classmethod
    def for_model(
        cls,
        model: str,
        max_input_tokens: int = 0,
        max_output_tokens: int = 0,
    ) -> TokenLimits:
        """
        Build limits for a model, honouring explicit overrides.

        Parameters
        ----------
        model:
            Model name.
        max_input_tokens:
            Context size override; ``0`` keeps the model default.
        max_output_tokens:
            Reply size override; ``0`` keeps the model default.

        Returns
        -------
        TokenLimits
            Resolved limits.
        """
        ctx_default, out_default = model_limits(model)
        return cls(
            model=model,
            max_tokens=(
                max_input_tokens if max_input_tokens > 0 else ctx_default
            ),
            response_tokens=(
                max_output_tokens if max_output_tokens > 0 else out_default
            ),
        )

    def __str__(self) -> str:
        return (
            f'model={self.model} max_tokens={self.max_tokens} '
            f'request_tokens={self.request_tokens} '
            f'response_tokens={self.response_tokens}'
        )
