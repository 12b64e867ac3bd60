"""Prompt templates for focus-area reviews."""

from typing import Dict, List, Optional

SECURITY_INSTRUCTIONS = """### Security

Focus specifically on security concerns:
- Input validation and sanitization
- Authentication and authorization logic
- Data exposure risks
- Injection vulnerabilities (SQL, XSS, command injection)
- Cryptographic issues
- Sensitive data handling
- Access control"""

PERFORMANCE_INSTRUCTIONS = """### Performance

Focus specifically on performance concerns:
- N+1 queries or inefficient data fetching
- Unnecessary computations or re-renders
- Memory leaks or excessive memory usage
- Missing caching opportunities
- Algorithmic complexity issues
- Bundle size impacts
- Database query efficiency"""

FOCUS_INSTRUCTIONS: Dict[str, str] = {
    "security": SECURITY_INSTRUCTIONS,
    "performance": PERFORMANCE_INSTRUCTIONS,
}


def get_focus_instructions(area: str) -> Optional[str]:
    """Instruction section for a recognized focus area, else ``None``."""
    return FOCUS_INSTRUCTIONS.get(area.strip().lower())


def build_focus_prompt(diff: str, files_changed: int, sections: List[str]) -> str:
    focus_section = "\n\n---\n\n".join(sections)
    plural = "" if files_changed == 1 else "s"
    return f"""Please review the following code changes with specific focus on the areas listed below.

## Diff to Review

```diff
{diff}
```

## Focus Areas

{focus_section}

Analyzing {files_changed} file{plural}. Use the available tools to understand the context, then provide your structured review."""
