"""GitHub Actions PR Reviewer empowered by AI."""

from chatgpt_pr_reviewer.cli import main

if __name__ == '__main__':
    main()
