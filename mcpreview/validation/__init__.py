"""
mcpreview validation module.

This module provides configuration loading and schema enforcement.
"""

from mcpreview.validation.config import ReviewConfig, load_config, merge_config, should_ignore_file

__all__ = ["ReviewConfig", "load_config", "merge_config", "should_ignore_file"]
