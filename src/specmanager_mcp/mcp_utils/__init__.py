"""Utility helpers for the SpecManager MCP server."""

from .debug_logger import DebugLogger
from .git_util import get_github_repo_from_working_dir, parse_github_repo_url

__all__ = [
    "DebugLogger",
    "get_github_repo_from_working_dir",
    "parse_github_repo_url",
]
