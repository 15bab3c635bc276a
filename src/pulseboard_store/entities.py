"""Pydantic models for the rows the application loads."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "Profile",
    "Project",
    "ProjectStatus",
    "slugify",
]


class ProjectStatus(StrEnum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class Project(BaseModel):
    """A row of the ``projects`` table.

    ``collaborators`` holds profile identifiers as strings; the column is a
    text array even though profile ids are numeric.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    created_at: datetime
    name: str
    slug: str
    status: ProjectStatus = ProjectStatus.IN_PROGRESS
    collaborators: list[str] = Field(default_factory=list)

    @field_validator("collaborators", mode="before")
    @classmethod
    def _stringify_ids(cls, value: object) -> object:
        if isinstance(value, list):
            return [str(item) for item in value]
        return value


class Profile(BaseModel):
    """Public profile of a collaborator."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    username: str
    full_name: str | None = None
    avatar_url: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value


def slugify(name: str) -> str:
    """Lower-case ``name`` and replace spaces with dashes.

    >>> slugify("Quarterly Roadmap Review")
    'quarterly-roadmap-review'
    """
    return name.lower().replace(" ", "-")
