"""GitHub Actions PR Reviewer empowered by AI."""

from chatgpt_pr_reviewer.commits import (
    append_reviewed,
    extract_reviewed,
    resolve_base,
)
from chatgpt_pr_reviewer.packing import pack_sections, pack_summary
from chatgpt_pr_reviewer.patch import annotate_hunk, split_patch
from chatgpt_pr_reviewer.review_parser import parse_review

__version__ = '2.0.0'

__all__ = [
    'annotate_hunk',
    'append_reviewed',
    'extract_reviewed',
    'pack_sections',
    'pack_summary',
    'parse_review',
    'resolve_base',
    'split_patch',
]
