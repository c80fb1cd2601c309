"""Git remote detection for project auto-detection.

Reads ``<workingDir>/.git/config`` directly (no ``git`` subprocess), finds the
``[remote "origin"]`` section and turns its URL into ``owner/repo``.  Every
"can't tell" outcome is ``None``; nothing here raises for a missing or
unreadable repository.
"""

from __future__ import annotations

import logging
import re

import anyio

logger = logging.getLogger(__name__)

_HTTPS_REMOTE = re.compile(r"https?://github\.com/([^/]+/[^/]+?)(?:\.git)?$")
_SSH_REMOTE = re.compile(r"git@github\.com:([^/]+/[^/]+?)(?:\.git)?$")
_URL_LINE = re.compile(r"^url\s*=\s*(.+)$")

ORIGIN_SECTION = '[remote "origin"]'


def parse_github_repo_url(url: str) -> str | None:
    """Return ``owner/repo`` for a GitHub HTTPS or SSH remote URL, else ``None``.

    >>> parse_github_repo_url("git@github.com:acme/widgets.git")
    'acme/widgets'
    """
    url = url.strip()
    for pattern in (_HTTPS_REMOTE, _SSH_REMOTE):
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def parse_origin_url(config_text: str) -> str | None:
    """Extract the ``url`` of the ``origin`` remote from git config text."""
    in_origin = False
    for raw_line in config_text.splitlines():
        line = raw_line.strip()
        if line.startswith("["):
            in_origin = line == ORIGIN_SECTION
            continue
        if in_origin:
            match = _URL_LINE.match(line)
            if match:
                return match.group(1).strip()
    return None


async def get_git_remote_url(working_dir: str) -> str | None:
    config_path = anyio.Path(working_dir) / ".git" / "config"
    try:
        text = await config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"No readable git config under {working_dir}: {e}")
        return None
    return parse_origin_url(text)


async def get_github_repo_from_working_dir(working_dir: str) -> str | None:
    """Resolve ``working_dir`` to the ``owner/repo`` of its GitHub origin remote."""
    remote_url = await get_git_remote_url(working_dir)
    if not remote_url:
        return None
    return parse_github_repo_url(remote_url)
