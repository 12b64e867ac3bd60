"""Prompt text for the review conversation."""

from mcpreview.prompts.system import get_initial_prompt, get_system_prompt
from mcpreview.prompts.templates import get_focus_instructions

__all__ = ["get_focus_instructions", "get_initial_prompt", "get_system_prompt"]
