"""Shared typed models for the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class RawRepo:
    """Starred repository snapshot produced by the fetch step. Never mutated."""

    id: int
    name: str
    full_name: str
    description: str
    url: str
    stars: int
    language: str
    topics: tuple[str, ...]
    readme_preview: str
    updated_at: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawRepo:
        topics = data.get("topics")
        return cls(
            id=_as_int(data.get("id")),
            name=_as_str(data.get("name")),
            full_name=_as_str(data.get("fullName")),
            description=_as_str(data.get("description")),
            url=_as_str(data.get("url")),
            stars=_as_int(data.get("stars")),
            language=_as_str(data.get("language")),
            topics=tuple(t for t in topics if isinstance(t, str)) if isinstance(topics, list) else (),
            readme_preview=_as_str(data.get("readmePreview")),
            updated_at=_as_str(data.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "description": self.description,
            "url": self.url,
            "stars": self.stars,
            "language": self.language,
            "topics": list(self.topics),
            "readmePreview": self.readme_preview,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True, slots=True)
class AnalyzedRepo:
    """One classification result as kept in the persisted analyzed store."""

    full_name: str
    categories: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    ai_summary: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalyzedRepo:
        return cls(
            full_name=_as_str(data.get("fullName")),
            categories=_str_tuple(data.get("categories")),
            tags=_str_tuple(data.get("tags")),
            ai_summary=_as_str(data.get("aiSummary")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fullName": self.full_name,
            "categories": list(self.categories),
            "tags": list(self.tags),
            "aiSummary": self.ai_summary,
        }


@dataclass(frozen=True, slots=True)
class FinalRepo:
    """Raw repository merged with its classification, as published."""

    repo: RawRepo
    categories: tuple[str, ...]
    tags: tuple[str, ...]
    ai_summary: str

    def to_dict(self) -> dict[str, Any]:
        data = self.repo.to_dict()
        data["categories"] = list(self.categories)
        data["tags"] = list(self.tags)
        data["aiSummary"] = self.ai_summary
        return data


@dataclass(frozen=True, slots=True)
class PublishedBundle:
    """The artifact consumed by the display frontend."""

    repos: list[FinalRepo]
    categories: list[str]
    tags: list[str]
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "repos": [repo.to_dict() for repo in self.repos],
            "categories": list(self.categories),
            "tags": list(self.tags),
            "updatedAt": self.updated_at,
        }


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(v for v in value if isinstance(v, str))
