"""Run configuration read from environment variables."""

from __future__ import annotations

import fnmatch
import logging
import os

from dataclasses import dataclass, field
from typing import Mapping

from chatgpt_pr_reviewer.tokens import TokenLimits, is_reasoning_model

logger = logging.getLogger(__name__)

VALID_REASONING_MODES = {'auto', 'on', 'off'}
# Valid reasoning effort levels (verified against OpenAI API docs)
VALID_REASONING_EFFORTS = {'none', 'low', 'medium', 'high'}

DEFAULT_SYSTEM_MESSAGE = (
    'You are a GitHub PR reviewer bot. You review pull requests line by '
    'line and focus only on material risks.\n\n'
    'Prioritize, in order:\n'
    '- correctness / logic bugs\n'
    '- security and unsafe patterns\n'
    '- performance regressions with real impact\n'
    '- breaking API / behavior changes\n'
    '- maintainability that affects future changes\n'
)


def split_globs(raw: str) -> list[str]:
    """
    Split a raw patterns string into a clean list of glob patterns.

    Parameters
    ----------
    raw:
        Raw glob patterns separated by commas/semicolons/newlines.

    Returns
    -------
    list[str]
        Cleaned patterns.
    """
    if not raw:
        return []
    parts: list[str] = []
    for chunk in raw.replace('\r', '\n').replace(';', '\n').split('\n'):
        for sub in chunk.split(','):
            pat = sub.strip()
            if pat:
                parts.append(pat)
    return parts


def prepare_extra_criteria(extra_criteria: str) -> str:
    """
    Format extra criteria lines as markdown bullets.

    Parameters
    ----------
    extra_criteria:
        Semi-colon separated criteria.

    Returns
    -------
    str
        Markdown bullet list.
    """
    if not extra_criteria:
        return ''
    lines: list[str] = []
    for item in extra_criteria.split(';'):
        _item = item.strip()
        if _item:
            if not _item.startswith('-'):
                _item = '- ' + _item
            lines.append(_item)
    return '\n'.join(lines)


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, '').strip().lower()
    if not raw:
        return default
    return raw in {'1', 'true', 'yes', 'on'}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning('Invalid %s="%s"; using %s.', name, raw, default)
        return default


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, '').strip()
    if not value:
        raise RuntimeError(f'{name} is required')
    return value


@dataclass
class Options:
    """
    Settings for one reviewer run.

    Attributes
    ----------
    github_token, repository, pr_id, api_url:
        GitHub context of the pull request under review.
    light_model, heavy_model:
        Models used for per-file summaries and for reviews respectively.
    max_files:
        Cap on the number of files summarized and reviewed; ``0`` disables
        the cap.
    concurrency_limit:
        Maximum number of model calls in flight at once.
    """

    github_token: str
    repository: str
    pr_id: int
    api_url: str = 'https://api.github.com'
    light_model: str = 'gpt-4o-mini'
    heavy_model: str = 'gpt-4o'
    temperature: float = 0.0
    max_input_tokens: int = 0
    max_output_tokens: int = 0
    reasoning_mode: str = 'auto'
    reasoning_effort: str = 'low'
    concurrency_limit: int = 4
    max_files: int = 60
    include_globs: list[str] = field(default_factory=list)
    exclude_globs: list[str] = field(default_factory=list)
    summary_only: bool = False
    review_comment_lgtm: bool = False
    debug: bool = False
    log_level: str = 'INFO'
    system_message: str = DEFAULT_SYSTEM_MESSAGE

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Options:
        """
        Read options from the environment.

        Parameters
        ----------
        environ:
            Mapping to read from; defaults to ``os.environ``.

        Returns
        -------
        Options
            Parsed options.

        Raises
        ------
        RuntimeError
            If a required GitHub variable is missing.
        """
        env = os.environ if environ is None else environ

        pr_id = _required(env, 'GITHUB_PR_ID')
        if not pr_id.isdigit():
            raise RuntimeError(f'GITHUB_PR_ID must be a number, got {pr_id}')

        reasoning_mode = env.get('OPENAI_REASONING', 'auto').strip().lower()
        if reasoning_mode not in VALID_REASONING_MODES:
            logger.warning(
                'Invalid OPENAI_REASONING="%s"; using "auto".',
                reasoning_mode,
            )
            reasoning_mode = 'auto'

        heavy_model = env.get('OPENAI_HEAVY_MODEL', 'gpt-4o').strip()
        effort = normalize_reasoning_effort(
            env.get('OPENAI_REASONING_EFFORT', ''), heavy_model
        )

        system_message = env.get('SYSTEM_MESSAGE', '').strip()
        if not system_message:
            intro = env.get('PROMPT_PROJECT_INTRODUCTION', '').strip()
            extra = prepare_extra_criteria(
                env.get('PROMPT_EXTRA_CRITERIA', '').strip()
            )
            system_message = DEFAULT_SYSTEM_MESSAGE
            if extra:
                system_message += f'{extra}\n'
            if intro:
                system_message = f'{intro}\n\n{system_message}'

        return cls(
            github_token=_required(env, 'GITHUB_TOKEN'),
            repository=_required(env, 'GITHUB_REPOSITORY'),
            pr_id=int(pr_id),
            api_url=env.get('GITHUB_API_URL', 'https://api.github.com'),
            light_model=env.get('OPENAI_LIGHT_MODEL', 'gpt-4o-mini').strip(),
            heavy_model=heavy_model,
            temperature=float(env.get('OPENAI_TEMPERATURE', '0.0')),
            max_input_tokens=_env_int(env, 'OPENAI_MAX_INPUT_TOKENS', 0),
            max_output_tokens=_env_int(env, 'OPENAI_MAX_TOKENS', 0),
            reasoning_mode=reasoning_mode,
            reasoning_effort=effort,
            concurrency_limit=max(
                1, _env_int(env, 'OPENAI_CONCURRENCY_LIMIT', 4)
            ),
            max_files=_env_int(env, 'MAX_FILES', 60),
            include_globs=split_globs(env.get('INCLUDE_PATH', '').strip()),
            exclude_globs=split_globs(env.get('EXCLUDE_PATH', '').strip()),
            summary_only=_env_bool(env, 'SUMMARY_ONLY', False),
            review_comment_lgtm=_env_bool(env, 'REVIEW_COMMENT_LGTM', False),
            debug=_env_bool(env, 'DEBUG', False),
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
            system_message=system_message,
        )

    @property
    def light_token_limits(self) -> TokenLimits:
        return TokenLimits.for_model(
            self.light_model, self.max_input_tokens, self.max_output_tokens
        )

    @property
    def heavy_token_limits(self) -> TokenLimits:
        return TokenLimits.for_model(
            self.heavy_model, self.max_input_tokens, self.max_output_tokens
        )

    def want_reasoning(self, model: str) -> bool:
        """
        Return True if reasoning mode should be used for ``model``.

        Parameters
        ----------
        model:
            Model name.

        Returns
        -------
        bool
            Whether to use reasoning mode.
        """
        supported = is_reasoning_model(model)

        if self.reasoning_mode == 'off':
            return False

        if self.reasoning_mode == 'on' and not supported:
            logger.warning(
                'OPENAI_REASONING="on" but model "%s" is not recognized as a '
                'reasoning model; disabling reasoning.',
                model,
            )
            return False

        if self.reasoning_mode == 'on':
            return True

        # auto mode
        return supported

    def check_path(self, filename: str) -> bool:
        """
        Return True if ``filename`` should be reviewed.

        A file is rejected when it matches an exclude pattern, or when
        include patterns are configured and none of them match.

        Parameters
        ----------
        filename:
            Path relative to the repository root.

        Returns
        -------
        bool
            Whether the file passes the path filters.
        """
        if any(fnmatch.fnmatch(filename, p) for p in self.exclude_globs):
            return False
        if not self.include_globs:
            return True
        return any(fnmatch.fnmatch(filename, p) for p in self.include_globs)


def normalize_reasoning_effort(effort: str, model: str) -> str:
    """
    Validate and normalize reasoning effort.

    Parameters
    ----------
    effort:
        Raw effort value; empty selects the model default.
    model:
        Model name used to choose the default.

    Returns
    -------
    str
        Normalized effort.
    """
    fallback = 'none' if model.lower().startswith('gpt-5') else 'low'
    e = (effort or '').strip().lower()
    if not e:
        return fallback
    if e in VALID_REASONING_EFFORTS:
        return e
    logger.warning(
        'Invalid OPENAI_REASONING_EFFORT="%s"; valid values are %s. '
        'Using "%s".',
        effort,
        sorted(VALID_REASONING_EFFORTS),
        fallback,
    )
    return fallback
