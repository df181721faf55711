"""Definitions of the proposal tracks Kepler knows how to read."""

from __future__ import annotations

import datetime as dt
import posixpath
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from kepler.errors import InvalidDocumentError
from kepler.models import DocumentRecord, PathInfo

# Metadata keys copied onto dedicated record fields. Everything else lands in ``extra``.
_FIELD_MAP = {
    "title": "title",
    "status": "status",
    "stage": "stage",
    "authors": "authors",
    "reviewers": "reviewers",
    "approvers": "approvers",
    "editor": "editor",
    "owning-sig": "owning_group",
    "participating-sigs": "participating_groups",
    "creation-date": "creation_date",
    "last-updated": "last_updated",
    "milestone": "milestone",
    "latest-milestone": "latest_milestone",
    "see-also": "see_also",
    "replaces": "replaces",
    "superseded-by": "superseded_by",
}
# GEP "relationships" entries folded into the cross-reference fields.
_RELATIONSHIP_MAP = {
    "extends": "see_also",
    "extendedBy": "see_also",
    "seeAlso": "see_also",
    "obsoletes": "replaces",
    "obsoletedBy": "superseded_by",
}
_LIST_FIELDS = {
    "authors",
    "reviewers",
    "approvers",
    "participating_groups",
    "see_also",
    "replaces",
    "superseded_by",
}


def _plain(value: Any) -> Any:
    """Convert YAML scalars (dates, numbers) into JSON-friendly values."""
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value if item is not None]
    return [str(value)]


def _relationship_numbers(entries: Any) -> List[str]:
    if not isinstance(entries, list):
        return []
    numbers = []
    for entry in entries:
        number = entry.get("number") if isinstance(entry, dict) else entry
        if number is not None:
            numbers.append(str(number))
    return numbers


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(slots=True, frozen=True)
class DocumentSource:
    """One proposal track living in a GitHub repository."""

    name: str
    label: str
    owner: str
    repo: str
    ref: str
    root: str
    pattern: re.Pattern[str]
    narrative_file: str
    path_parser: Callable[[re.Match[str]], PathInfo]
    change_pattern: re.Pattern[str]
    required_fields: Tuple[str, ...] = ()
    path_template: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def parse_path(self, path: str) -> Optional[PathInfo]:
        match = self.pattern.match(path)
        if match is None:
            return None
        return self.path_parser(match)

    def parse_changed_file(self, filename: str) -> Optional[PathInfo]:
        """Identity of the document whose directory contains ``filename``."""
        match = self.change_pattern.match(filename)
        if match is None:
            return None
        return self.path_parser(match)

    def build_path(self, number: str) -> Optional[str]:
        """Metadata path for ``number`` when the layout makes it derivable."""
        if self.path_template is None:
            return None
        return self.path_template.format(number=number)

    def narrative_path(self, path: str) -> str:
        return posixpath.join(posixpath.dirname(path), self.narrative_file)

    def raw_url(self, raw_base: str, path: str) -> str:
        return f"{raw_base.rstrip('/')}/{self.owner}/{self.repo}/{self.ref}/{path}"

    def web_url(self, web_base: str, path: str) -> str:
        return f"{web_base.rstrip('/')}/{self.owner}/{self.repo}/tree/{self.ref}/{posixpath.dirname(path)}"

    def build_record(self, path: str, text: str, *, web_base: str) -> DocumentRecord:
        """Parse raw YAML metadata fetched from ``path`` into a record.

        Raises :class:`InvalidDocumentError` when the path does not belong to
        this track, the YAML is unreadable, or a mandatory field is missing.
        """
        info = self.parse_path(path)
        if info is None:
            raise InvalidDocumentError(path, "path does not match the track layout")
        try:
            metadata = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise InvalidDocumentError(path, f"unreadable YAML ({exc})") from exc
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise InvalidDocumentError(path, "metadata is not a mapping")
        for required in self.required_fields:
            if metadata.get(required) in (None, ""):
                raise InvalidDocumentError(path, f"missing '{required}'")

        metadata = _plain(metadata)
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        relationships: Dict[str, Any] = {}
        for key, value in metadata.items():
            target = _FIELD_MAP.get(key)
            if key == "relationships" and isinstance(value, dict):
                relationships = value
            elif target is None:
                extra[key] = value
            elif target in _LIST_FIELDS:
                values[target] = _as_list(value)
            elif target == "milestone":
                values[target] = (
                    {str(k): str(v) for k, v in value.items() if v is not None}
                    if isinstance(value, dict)
                    else {}
                )
            else:
                values[target] = _as_text(value)

        for relation, entries in relationships.items():
            target = _RELATIONSHIP_MAP.get(relation)
            if target is None:
                extra.setdefault("relationships", {})[relation] = entries
                continue
            merged = values.setdefault(target, [])
            merged.extend(number for number in _relationship_numbers(entries) if number not in merged)

        if values.get("title") is None:
            values["title"] = _as_text(metadata.get("name")) or f"{self.label}-{info.number}"

        return DocumentRecord(
            number=info.number,
            path=path,
            github_url=self.web_url(web_base, path),
            slug=info.slug,
            subgroup=info.subgroup,
            extra=extra,
            **values,
        )


def _kep_path(match: re.Match[str]) -> PathInfo:
    return PathInfo(number=match.group(2), slug=match.group(3), subgroup=match.group(1))


def _gep_path(match: re.Match[str]) -> PathInfo:
    number = match.group(1)
    return PathInfo(number=number, slug=f"gep-{number}")


KEP = DocumentSource(
    name="kep",
    label="KEP",
    owner="kubernetes",
    repo="enhancements",
    ref="master",
    root="keps",
    pattern=re.compile(r"^keps/(sig-[^/]+)/(\d+)-([^/]+)/kep\.yaml$"),
    narrative_file="README.md",
    path_parser=_kep_path,
    change_pattern=re.compile(r"^keps/(sig-[^/]+)/(\d+)-([^/]+)/"),
)

GEP = DocumentSource(
    name="gep",
    label="GEP",
    owner="kubernetes-sigs",
    repo="gateway-api",
    ref="main",
    root="geps",
    pattern=re.compile(r"^geps/gep-(\d+)/metadata\.yaml$"),
    narrative_file="index.md",
    path_parser=_gep_path,
    change_pattern=re.compile(r"^geps/gep-(\d+)/"),
    required_fields=("number", "name"),
    path_template="geps/gep-{number}/metadata.yaml",
)

SOURCES: Dict[str, DocumentSource] = {source.name: source for source in (KEP, GEP)}


def get_source(name: str) -> DocumentSource:
    try:
        return SOURCES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown track '{name}', expected one of: {', '.join(SOURCES)}") from None
