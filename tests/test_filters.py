"""Tests for filtering, sorting and pagination."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from kepler.models import DocumentRecord
from kepler.view.filters import (
    FilterState,
    Selection,
    SelectionMode,
    SortState,
    apply_view,
    facet_values,
    filter_records,
    is_stale,
    paginate,
    parse_date,
    sort_records,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _days_ago(days: int) -> str:
    return (NOW - timedelta(days=days)).date().isoformat()


def make_record(number: str, **fields) -> DocumentRecord:
    values = {"path": f"keps/sig-x/{number}-s/kep.yaml", "github_url": "u", "slug": f"slug-{number}"}
    values.update(fields)
    return DocumentRecord(number=number, **values)


RECORDS = [
    make_record("1", title="Pod Overhead", subgroup="sig-node", status="implemented", stage="stable", authors=["@alice"]),
    make_record("20", title="Job Tracking", subgroup="sig-apps", status="implementable", stage="beta", authors=["@bob"]),
    make_record("3", title="Sidecar containers", subgroup="sig-node", status="provisional", stage="alpha", excerpt="Restartable init containers"),
    make_record("400", title="Gateway", subgroup=None, status=None, stage=None),
]


class TestStaleness:
    """Tests for is_stale."""

    def test_old_implementable_is_stale(self) -> None:
        record = make_record("1", status="implementable", last_updated=_days_ago(400))

        assert is_stale(record, now=NOW)

    def test_recent_implementable_is_not_stale(self) -> None:
        record = make_record("1", status="implementable", last_updated=_days_ago(300))

        assert not is_stale(record, now=NOW)

    def test_implemented_is_never_stale(self) -> None:
        record = make_record("1", status="implemented", last_updated=_days_ago(4000))

        assert not is_stale(record, now=NOW)

    def test_falls_back_to_creation_date(self) -> None:
        record = make_record("1", status="provisional", creation_date=_days_ago(400))

        assert is_stale(record, now=NOW)

    def test_status_case_is_ignored(self) -> None:
        record = make_record("1", status="Provisional", last_updated=_days_ago(400))

        assert is_stale(record, now=NOW)

    def test_without_dates_is_not_stale(self) -> None:
        assert not is_stale(make_record("1", status="provisional"), now=NOW)

    def test_parse_date(self) -> None:
        assert parse_date("2024-01-02") == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert parse_date("garbage") is None
        assert parse_date(None) is None


class TestSelection:
    """Tests for the three-state categorical filter."""

    def test_unset_matches_everything(self) -> None:
        selection = Selection.unset()

        assert not selection.active
        assert selection.matches(None)
        assert selection.matches("sig-node")

    def test_empty_choice_matches_nothing(self) -> None:
        selection = Selection.of([])

        assert selection.mode is SelectionMode.NONE
        assert selection.active
        assert not selection.matches("sig-node")

    def test_some(self) -> None:
        selection = Selection.of(["sig-node", "sig-apps"])

        assert selection.matches("sig-apps")
        assert not selection.matches("sig-auth")
        assert not selection.matches(None)


class TestFilterRecords:
    """Tests for filter_records."""

    def test_no_filters(self) -> None:
        assert filter_records(RECORDS, FilterState()) == RECORDS
        assert not FilterState().active

    def test_query_matches_title_case_insensitively(self) -> None:
        result = filter_records(RECORDS, FilterState(query="  sidecar "))

        assert [record.number for record in result] == ["3"]

    @pytest.mark.parametrize(
        "query,expected",
        [("400", ["400"]), ("slug-20", ["20"]), ("restartable", ["3"]), ("@alice", ["1"])],
    )
    def test_query_fields(self, query: str, expected) -> None:
        result = filter_records(RECORDS, FilterState(query=query))

        assert [record.number for record in result] == expected

    def test_subgroup_and_stage(self) -> None:
        filters = FilterState(subgroup=Selection.of(["sig-node"]), stage=Selection.of(["alpha"]))

        assert [record.number for record in filter_records(RECORDS, filters)] == ["3"]

    def test_none_selected_empties_result(self) -> None:
        filters = FilterState(status=Selection.none())

        assert filters.active
        assert filter_records(RECORDS, filters) == []

    def test_stale_only(self) -> None:
        records = [
            make_record("1", status="implementable", last_updated=_days_ago(400)),
            make_record("2", status="implementable", last_updated=_days_ago(10)),
        ]

        result = filter_records(records, FilterState(stale_only=True), now=NOW)

        assert [record.number for record in result] == ["1"]

    def test_bookmarked_only(self) -> None:
        filters = FilterState(bookmarked_only=True, bookmarks=frozenset({"20", "400"}))

        assert [record.number for record in filter_records(RECORDS, filters)] == ["20", "400"]


class TestSorting:
    """Tests for sort_records and SortState."""

    def test_number_descending(self) -> None:
        result = sort_records(RECORDS, SortState())

        assert [record.number for record in result] == ["400", "20", "3", "1"]

    def test_title_ascending(self) -> None:
        result = sort_records(RECORDS, SortState("title", descending=False))

        assert [record.title for record in result] == [
            "Gateway",
            "Job Tracking",
            "Pod Overhead",
            "Sidecar containers",
        ]

    def test_underscored_key(self) -> None:
        records = [make_record("1", last_updated="2024-01-01"), make_record("2", last_updated="2023-01-01")]

        result = sort_records(records, SortState("last_updated", descending=False))

        assert [record.number for record in result] == ["2", "1"]

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError, match="Unknown sort key"):
            sort_records(RECORDS, SortState("popularity"))

    def test_toggle(self) -> None:
        state = SortState()

        assert state.toggled("number") == SortState("number", False)
        assert state.toggled("title") == SortState("title", False)


class TestPagination:
    """Tests for paginate and apply_view."""

    def test_pages(self) -> None:
        records = [make_record(str(n)) for n in range(100)]

        page = paginate(records, 3, page_size=48)

        assert page.total_pages == 3
        assert page.total_count == 100
        assert len(page.items) == 4

    def test_page_is_clamped(self) -> None:
        records = [make_record(str(n)) for n in range(10)]

        assert paginate(records, 99, page_size=4).page == 3
        assert paginate(records, 0, page_size=4).page == 1

    def test_empty_collection_has_one_page(self) -> None:
        page = paginate([], 1)

        assert page.total_pages == 1
        assert page.items == []

    def test_apply_view(self) -> None:
        filters = FilterState(subgroup=Selection.of(["sig-node"]))

        page = apply_view(RECORDS, filters, SortState("number", descending=False), page_size=1)

        assert page.total_count == 2
        assert page.total_pages == 2
        assert [record.number for record in page.items] == ["1"]


def test_facet_values() -> None:
    assert facet_values(RECORDS, "subgroup") == ["sig-apps", "sig-node"]
    assert facet_values(RECORDS, "stage") == ["alpha", "beta", "stable"]
