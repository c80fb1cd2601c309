"""MCP Tool Providers - specmanager.ai projects, specs and tasks."""

from .projects import ProjectToolProvider
from .specs import SpecToolProvider
from .tasks import TaskToolProvider

__all__ = [
    "ProjectToolProvider",
    "SpecToolProvider",
    "TaskToolProvider",
]
