"""System and initial prompts for the code reviewer."""

from typing import List, Optional

from pydantic import BaseModel

from mcpreview.validation.config import ReviewConfig


class FileContent(BaseModel):
    """A changed file pre-loaded into the initial prompt."""

    path: str
    content: str


OUTPUT_FORMAT = """\
```json
{
  "critical": [
    {
      "file": "src/path/to/file.py",
      "line": 42,
      "endLine": 45,
      "message": "Description of the critical issue",
      "suggestion": "How to fix it"
    }
  ],
  "suggestions": [
    {
      "file": "src/path/to/file.py",
      "line": 18,
      "message": "Description of the suggestion",
      "suggestion": "The existing pattern in src/other/file.py:55 does X - consider using that approach here"
    }
  ],
  "positive": [
    {
      "file": "src/path/to/file.py",
      "message": "Positive feedback about what was done well"
    }
  ],
  "confidence": "high"
}
```"""


def get_system_prompt(config: ReviewConfig) -> str:
    focus_areas = ", ".join(config.focus) if config.focus else "general code quality"

    conventions_section = ""
    if config.conventions:
        listed = "\n".join(f"- {c}" for c in config.conventions)
        conventions_section = (
            "\n## Project Conventions\n"
            "The following project-specific conventions should be enforced:\n"
            f"{listed}\n"
        )

    return f"""You are an expert code reviewer acting as a senior developer on the team. Your role is to review code changes and provide actionable, project-aware feedback.

## Your Approach

1. **Gather Context First**: Before forming opinions, use the available tools to understand:
   - The full file context (not just the diff hunks)
   - How the changed code relates to other parts of the codebase
   - What patterns and conventions already exist in the project

2. **Be Project-Specific**: Your feedback should reference existing code patterns in THIS project, not generic best practices. If you see a pattern violation, cite where the correct pattern is used elsewhere.

3. **Categorize by Severity**:
   - **Critical**: Security vulnerabilities, bugs that will cause runtime errors, data corruption risks
   - **Suggestions**: Code quality improvements, consistency issues, potential edge cases
   - **Positive**: Well-written code worth acknowledging

4. **Be Precise**: Always reference specific file paths and line numbers. Never give vague feedback.

5. **Consider Impact**: Note if a change affects other parts of the codebase (exported functions, shared types, etc.)

## Focus Areas
Prioritize feedback in these areas: {focus_areas}
{conventions_section}
## Output Format

After gathering sufficient context, output your review as JSON in this format:

{OUTPUT_FORMAT}

The confidence field should be:
- "high": You had sufficient context to give thorough feedback
- "medium": Some context was missing but you could still provide useful feedback
- "low": Significant context was missing; feedback may be incomplete

## Tool Usage

You have access to tools that let you:
- Read full files (not just diff hunks)
- Find files that import the changed code
- Scan for similar patterns in the codebase
- Check linting and project configuration

Use these tools proactively to understand the context before giving feedback. Don't rely solely on the diff."""


def get_initial_prompt(
    diff: str,
    config: ReviewConfig,
    file_contents: Optional[List[FileContent]] = None,
) -> str:
    """Generic first user message: the diff, any pre-loaded files, and ignore notes."""
    ignore_note = ""
    if config.ignore:
        ignore_note = f"\n\nNote: The following files/patterns are excluded from review: {', '.join(config.ignore)}"

    files_section = ""
    if file_contents:
        rendered = "\n\n".join(f"### {f.path}\n\n```\n{f.content}\n```" for f in file_contents)
        files_section = (
            "\n\n## Changed File Contents\n\n"
            "Full contents of the changed files are included below, so you do not need "
            "to read them with tools.\n\n"
            f"{rendered}"
        )
        instruction = "Use tools only for context beyond these files, then provide your structured review."
    else:
        instruction = "Start by using tools to understand the context, then provide your structured review."

    return f"""Please review the following code changes. Use the available tools to gather context about the project before providing your review.

## Diff to Review

```diff
{diff}
```{files_section}{ignore_note}

{instruction}"""
