"""Core Kepler data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class PathInfo:
    """Identity fields parsed out of a document path."""

    number: str
    slug: str
    subgroup: Optional[str] = None


@dataclass(slots=True)
class DocumentRecord:
    """One proposal: parsed metadata plus path-derived identity."""

    number: str
    path: str
    github_url: str
    slug: str
    subgroup: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    stage: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    reviewers: List[str] = field(default_factory=list)
    approvers: List[str] = field(default_factory=list)
    editor: Optional[str] = None
    owning_group: Optional[str] = None
    participating_groups: List[str] = field(default_factory=list)
    creation_date: Optional[str] = None
    last_updated: Optional[str] = None
    milestone: Dict[str, str] = field(default_factory=dict)
    latest_milestone: Optional[str] = None
    see_also: List[str] = field(default_factory=list)
    replaces: List[str] = field(default_factory=list)
    superseded_by: List[str] = field(default_factory=list)
    excerpt: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(slots=True, frozen=True)
class Progress:
    loaded: int = 0
    total: int = 0


@dataclass(slots=True, frozen=True)
class RateLimitInfo:
    """Latest rate-limit figures reported by the remote API."""

    remaining: Optional[int] = None
    limit: Optional[int] = None
    reset: Optional[datetime] = None
    is_rate_limited: bool = False


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """A document touched by a commit, stamped with the commit date."""

    number: str
    date: datetime

    def to_dict(self) -> Dict[str, str]:
        return {"number": self.number, "date": self.date.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "ChangeEvent":
        return cls(number=str(data["number"]), date=datetime.fromisoformat(data["date"]))


@dataclass(slots=True, frozen=True)
class Success(Generic[T]):
    key: str
    value: T


@dataclass(slots=True, frozen=True)
class Failure:
    key: str
    error: BaseException


Result = Union[Success[T], Failure]


@dataclass(slots=True)
class BatchOutcome(Generic[T]):
    """Per-item results of a fetch pass, split by variant."""

    successes: List[T] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)

    def add(self, result: Result) -> None:
        if isinstance(result, Success):
            self.successes.append(result.value)
        else:
            self.failures.append(result)

    @property
    def failed(self) -> int:
        return len(self.failures)
