"""Prompt templates and the inputs they are rendered from."""

from __future__ import annotations

import dataclasses

from dataclasses import dataclass
from string import Template

FILE_CONTENT_PLACEHOLDER = '$file_content'
NO_FILE_CONTENT = 'file contents cannot be provided'
NO_FILE_DIFF = 'file diff cannot be provided'

SUMMARIZE_FILE_DIFF = """$system_message

GitHub pull request title:
`$title`

Description for the pull request:
```
$description
```

Content of file `$filename` prior to the changes:
```
$file_content
```

Diff for `$filename`:
```diff
$file_diff
```

I would like you to summarize the diff within 50 words. Below the summary,
triage the diff as `NEEDS_REVIEW` or `APPROVED` using the exact format
`[TRIAGE]: <NEEDS_REVIEW or APPROVED>`. Use `APPROVED` only for changes that
cannot alter behaviour, such as fixed typos, formatting or comments; when in
doubt, use `NEEDS_REVIEW`.
"""

SUMMARIZE_CHANGESETS = """Provided below are changesets in this pull request.
The format consists of filename(s) and the summary of changes
for those files. There is a separator between each changeset.
Your task is to de-deduplicate and group together files with
related/similar changes into a single changeset. Respond with the
updated changesets using the same format as the input.

$raw_summary
"""

SUMMARIZE = """$system_message

GitHub pull request title:
`$title`

Description for the pull request:
```
$description
```

Summaries of the changes in this pull request:
```
$raw_summary
```

Provide the final response in `markdown` with a high-level summary of the
whole pull request within 100 words, followed by a table of files and their
summaries, grouping files with similar changes into a single row.
"""

SUMMARIZE_RELEASE_NOTES = """Create concise release notes in `markdown`
for this pull request, focusing on its purpose and user story. Classify the
changes as "New Feature", "Bug fix", "Documentation", "Refactor", "Style",
"Test", "Chore" or "Revert" and give a bullet point list. Keep the notes
within 50-100 words and omit anything that is not user-facing.

Summaries of the changes:
```
$raw_summary
```
"""

REVIEW_FILE_DIFF = """$system_message

GitHub pull request title:
`$title`

Description for the pull request:
```
$description
```

Content of file `$filename` prior to the changes:
```
$file_content
```

$patches
"""

REVIEW_INSTRUCTIONS = """
Format for changes:
  ---new_hunk---
  ```
  <new hunk annotated with line numbers>
  ```

  ---old_hunk---
  ```
  <old hunk that was replaced by the new hunk above>
  ```

  ---comment_chains---
  ```
  <comment chains>
  ```

  ---end_change_section---
  ...

Important instructions:
- The above format for changes consists of multiple change sections. Each
  change section consists of a new hunk (annotated with line numbers), an
  old hunk and optionally, existing comment chains. The line number
  annotation on each line in the new hunk is of the format
  `<line_number><colon><whitespace>`.
- The code in the old hunk does not exist anymore as it was replaced by the
  new hunk. The new hunk is the code that you need to review. Consider the
  context provided by the old hunk and associated comment chain when
  reviewing the new hunk.
- Do a line by line review of new hunks and point out substantive issues in
  those line number ranges. For each issue, provide the exact line number
  range (inclusive) where the issue occurs.
- Only respond in the below response format (consisting of review sections)
  and nothing else. Each review section must consist of a line number range
  and a review comment for that line number range. There's a separator
  between review sections.
- Line number ranges for each review section must be within the line number
  range of a specific new hunk, i.e. <start_line_number> must belong to the
  same hunk as the <end_line_number>.
- Do not summarize the changes or repeat back provided code in the review
  comments; only point out substantive issues.
- Use Markdown format for review comment text.
- Fenced code blocks must be used for new content and replacement snippets
  and must not be annotated with line numbers.
- If needed, provide a replacement suggestion using fenced code blocks with
  `suggestion` as the language identifier. The line number range in the
  review section must map exactly to the line number range (inclusive) that
  needs to be replaced within a new_hunk. Replacement suggestions should be
  complete units that can be directly committed by the user in the GitHub UI.
- If there are no substantive issues detected at a line range and/or the
  implementation looks good, respond with the comment "LGTM!" and nothing
  else for the respective line range in a review section.

Response format expected:
  <start_line_number>-<end_line_number>:
  <review comment>
  ---
  <start_line_number>-<end_line_number>:
  <review comment>
  ```suggestion
  <code/text that replaces everything between start_line_number and end_line_number>
  ```
  ---
  ...

Example changes:
  ---new_hunk---
  1: def add(x, y):
  2:     z = x+y
  3:     retrn z
  4:
  5: def multiply(x, y):
  6:     return x * y

  ---old_hunk---
  def add(x, y):
      return x + y

Example response:
  3-3:
  There's a typo in the return statement.
  ```suggestion
      return z
  ```
  ---
  5-6:
  LGTM!
  ---

Changes for review are below:
"""


@dataclass
class Inputs:
    """Values substituted into the prompt templates."""

    system_message: str = ''
    title: str = 'no title provided'
    description: str = 'no description provided'
    raw_summary: str = ''
    release_notes: str = ''
    filename: str = ''
    file_content: str = NO_FILE_CONTENT
    file_diff: str = NO_FILE_DIFF
    patches: str = ''

    def clone(self, **changes: str) -> Inputs:
        return dataclasses.replace(self, **changes)

    def render(self, template: str) -> str:
        """Substitute the inputs into ``template``."""
        return Template(template).safe_substitute(dataclasses.asdict(self))


def placeholder_count(
    template: str, name: str = FILE_CONTENT_PLACEHOLDER
) -> int:
    """Return how many times ``name`` occurs in ``template``."""
    return template.count(name)
