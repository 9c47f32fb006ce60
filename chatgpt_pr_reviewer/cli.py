"""Command-line entry point used by the GitHub Action."""

from __future__ import annotations

import logging

from chatgpt_pr_reviewer.config import Options
from chatgpt_pr_reviewer.log import setup_logging
from chatgpt_pr_reviewer.reviewer import PullRequestReviewer

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the PR reviewer end-to-end."""
    options = Options.from_env()
    setup_logging(options.log_level)
    result = PullRequestReviewer.from_options(options).run()
    if result is None:
        return
    report = result.report
    logger.info(
        'Review done: %s comments, %s failed summaries, %s failed reviews',
        len(result.review_items),
        len(report.summaries_failed),
        len(report.reviews_failed),
    )
