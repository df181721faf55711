"""Tests for text utility functions."""

from __future__ import annotations

from kepler.utils.text import iter_prose_lines, make_excerpt, normalize_whitespace

README = """\
# KEP-2371: cAdvisor-less, CRI-full Container and Pod Stats

<!-- toc -->
- [Release Signoff Checklist](#release-signoff-checklist)
<!-- /toc -->

## Release Signoff Checklist

- [ ] Enhancement issue in release milestone
- [ ] KEP approvers have approved the KEP status as `implementable`

## Summary

This KEP proposes moving **container stats** collection from
[cAdvisor](https://github.com/google/cadvisor) into the CRI implementation.

```go
type ContainerStats struct{}
```

| Field | Meaning |
|-------|---------|
"""


class TestIterProseLines:
    """Test iter_prose_lines function."""

    def test_skips_markup(self) -> None:
        """Should keep prose and drop headings, comments, checklists, code and tables."""
        lines = list(iter_prose_lines(README))

        assert lines == [
            "This KEP proposes moving container stats collection from",
            "cAdvisor into the CRI implementation.",
        ]

    def test_table_of_contents_marker(self) -> None:
        assert list(iter_prose_lines("[TOC]\nReal text")) == ["Real text"]


class TestNormalizeWhitespace:
    """Test normalize_whitespace function."""

    def test_normalize_simple(self) -> None:
        """Should join and strip lines."""
        lines = ["  Line 1  ", "  Line 2  ", "  Line 3  "]

        assert normalize_whitespace(lines) == "Line 1 Line 2 Line 3"

    def test_normalize_empty_lines(self) -> None:
        """Should skip empty lines."""
        lines = ["Line 1", "", "  ", "Line\t 2", "\n"]

        assert normalize_whitespace(lines) == "Line 1 Line 2"

    def test_normalize_all_empty(self) -> None:
        """Should return empty string for all empty lines."""
        assert normalize_whitespace(["", "  ", "\n", "\t"]) == ""


class TestMakeExcerpt:
    """Test make_excerpt function."""

    def test_short_narrative(self) -> None:
        assert make_excerpt(README) == (
            "This KEP proposes moving container stats collection from "
            "cAdvisor into the CRI implementation."
        )

    def test_truncates_on_word_boundary(self) -> None:
        excerpt = make_excerpt("alpha beta gamma delta epsilon", max_chars=14)

        assert excerpt == "alpha beta…"

    def test_empty_inputs(self) -> None:
        assert make_excerpt("") is None
        assert make_excerpt("# Only a heading\n<!-- note -->\n") is None
