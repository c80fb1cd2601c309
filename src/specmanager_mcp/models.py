"""Pydantic models for specmanager.ai API payloads.

Field names follow the backend's camelCase JSON.  Unknown fields are ignored so
the backend can grow without breaking the server.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class User(_ApiModel):
    id: str
    email: str | None = None
    name: str | None = None


class SpecSummary(_ApiModel):
    id: str
    title: str
    stage: str


class SpecDetail(SpecSummary):
    requirementsContent: str | None = None
    designContent: str | None = None


class Task(_ApiModel):
    id: str
    taskNumber: str | int | None = None
    title: str
    status: str
    files: list[str] = Field(default_factory=list)
    implementation: str | None = None
    purposes: str | None = None
    sortOrder: int | None = None
    specId: str | None = None
    createdAt: str | None = None
    updatedAt: str | None = None
    spec: SpecSummary | None = None

    @property
    def number_prefix(self) -> str:
        return f"[{self.taskNumber}] " if self.taskNumber else ""


class TaskDetail(Task):
    spec: SpecDetail


class Project(_ApiModel):
    id: str
    name: str
    githubRepositoryFullName: str | None = None
    githubRepositoryUrl: str | None = None
    createdAt: str | None = None
    updatedAt: str | None = None


class TaskCounts(_ApiModel):
    pending: int = 0
    inProgress: int = 0
    done: int = 0
    total: int = 0


class Spec(_ApiModel):
    id: str
    title: str
    stage: str
    taskCounts: TaskCounts = Field(default_factory=TaskCounts)

    @property
    def is_complete(self) -> bool:
        return self.taskCounts.pending == 0 and self.taskCounts.inProgress == 0


class TaskCompletion(_ApiModel):
    summary: str
    filesModified: list[str]
    implementation: str | None = None


class ProgressUpdate(_ApiModel):
    message: str
    percent: int | float | None = None
