"""Typed task records validated at the PerformTask boundary."""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StageKind(str, Enum):
    """Closed set of task names this worker knows how to run."""

    TUTTI = "TuttiMonitor"
    SEARCH = "MonitorBluesky"
    FILTER = "MonitorGemini"
    HYDRATE = "MonitorHydrate"
    DELIVER = "MonitorSlack"

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["StageKind"]:
        try:
            return cls(name)
        except ValueError:
            return None


class Metadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    keywords: List[str] = Field(default_factory=list)
    # legacy single-keyword field, still sent by older playlists
    keyword: Optional[str] = None
    since: Optional[int] = None

    @field_validator("keywords", mode="before")
    @classmethod
    def _null_keywords(cls, v: Any) -> Any:
        return [] if v is None else v

    def search_terms(self) -> List[str]:
        terms = [k for k in self.keywords if k and k.strip()]
        if self.keyword and self.keyword.strip():
            terms.append(self.keyword)
        return terms


class Stage(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    output: Any = None


class TaskContext(BaseModel):
    model_config = ConfigDict(extra="allow")

    metadata: Metadata = Field(default_factory=Metadata)
    sequence: List[Stage] = Field(default_factory=list)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("sequence", mode="before")
    @classmethod
    def _null_sequence(cls, v: Any) -> Any:
        return [] if v is None else v

    def stage_output(self, name: str) -> Any:
        """Output of the most recent sequence entry called `name`, or None."""
        for stage in reversed(self.sequence):
            if stage.name == name:
                return stage.output
        return None


class Playlist(BaseModel):
    model_config = ConfigDict(extra="allow")

    slug: str


class Task(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    talkback: str
    playlist: Playlist
    context: TaskContext = Field(default_factory=TaskContext)

    @field_validator("context", mode="before")
    @classmethod
    def _null_context(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def kind(self) -> Optional[StageKind]:
        return StageKind.parse(self.name)

    @property
    def slug(self) -> str:
        return self.playlist.slug

    @classmethod
    def parse(cls, payload: Union[str, bytes]) -> "Task":
        """Parse a JSON payload; raises pydantic.ValidationError on bad input."""
        return cls.model_validate_json(payload)


__all__ = ["StageKind", "Metadata", "Stage", "TaskContext", "Playlist", "Task"]
