"""Pydantic models describing registered workflows and activities."""

from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field


class SemanticVersion(BaseModel):
    """Semantic version with ``major.minor.patch`` components."""

    model_config = ConfigDict(frozen=True)

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, value: str) -> "SemanticVersion":
        """Parse a dotted semantic version string."""
        parts = value.split(".")
        if len(parts) != 3:
            raise ValueError("Semantic version must have three components")
        major, minor, patch = (int(p) for p in parts)
        return cls(major=major, minor=minor, patch=patch)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.major}.{self.minor}.{self.patch}"


class ActivityDescriptor(BaseModel):
    """A named unit of work and the function implementing it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    version: SemanticVersion = Field(default_factory=lambda: SemanticVersion.parse("1.0.0"))
    description: Optional[str] = None
    fn: Callable[..., Any] = Field(exclude=True)


class WorkflowDescriptor(BaseModel):
    """A named workflow function."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: Optional[str] = None
    fn: Callable[..., Any] = Field(exclude=True)
