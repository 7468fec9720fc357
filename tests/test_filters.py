from __future__ import annotations

import math

from keyword_matrix.features.matrix import build_matrix
from keyword_matrix.pipeline.filters import (
    ALL_SOURCES,
    OPEN_RANGE,
    FilterCriteria,
    FilterInput,
    apply_filters,
    has_changed,
    parse_bound,
)
from keyword_matrix.pipeline.query import query_matrix
from keyword_matrix.preprocess.normalize import normalize_records


def _matrix(records: list[dict[str, object]]):
    return build_matrix(normalize_records(records))


def _sample_matrix():
    return _matrix(
        [
            {
                "keyword": "SEO Tips",
                "KD": "10",
                "SV": "500",
                "Intent": "Informational, Commercial",
                "createdAt": "2024-01-01",
            },
            {"keyword": "SEO Tips", "KD": "40", "SV": "500", "createdAt": "2024-02-01"},
            {
                "keyword": "buy shoes",
                "KD": "55",
                "SV": "2000",
                "Intent": "Transactional",
                "createdAt": "2024-01-01",
            },
            {
                "keyword": "shoe size",
                "KD": "n/a",
                "SV": "",
                "Intent": "-",
                "createdAt": "2024-01-01",
            },
        ]
    )


def test_search_is_case_insensitive_substring_and_blank_is_noop() -> None:
    matrix = _sample_matrix()

    assert apply_filters(matrix, FilterCriteria(search_text="tips")) == ["SEO Tips"]
    assert apply_filters(matrix, FilterCriteria(search_text="SHOE")) == ["buy shoes", "shoe size"]
    assert apply_filters(matrix, FilterCriteria(search_text="   ")) == matrix.keywords()
    assert apply_filters(matrix, FilterCriteria(search_text="o t")) == ["SEO Tips"]


def test_kd_range_matches_when_any_cell_is_inside() -> None:
    matrix = _sample_matrix()

    criteria = FilterCriteria(kd_range=(35.0, 45.0))
    assert apply_filters(matrix, criteria) == ["SEO Tips"]

    criteria = FilterCriteria(kd_range=(50.0, math.inf))
    assert apply_filters(matrix, criteria) == ["buy shoes"]


def test_non_numeric_cells_never_satisfy_a_range() -> None:
    matrix = _sample_matrix()

    matched = apply_filters(matrix, FilterCriteria(kd_range=(-math.inf, 1_000.0)))

    assert "shoe size" not in matched
    assert apply_filters(matrix, FilterCriteria(sv_range=(0.0, 100_000.0))) == [
        "SEO Tips",
        "buy shoes",
    ]


def test_unparsable_bound_produces_zero_matches() -> None:
    matrix = _sample_matrix()
    criteria = FilterInput(kd_min="ten").commit()

    assert math.isnan(criteria.kd_range[0])
    assert apply_filters(matrix, criteria) == []


def test_intent_filter_is_substring_match_over_any_cell() -> None:
    matrix = _sample_matrix()

    assert apply_filters(matrix, FilterCriteria(intents=("commercial",))) == ["SEO Tips"]
    assert apply_filters(matrix, FilterCriteria(intents=("trans", "inform"))) == [
        "SEO Tips",
        "buy shoes",
    ]
    assert apply_filters(matrix, FilterCriteria(intents=("-",))) == []


def test_has_changed_requires_two_cells_and_a_numeric_difference() -> None:
    same = _matrix(
        [
            {"keyword": "a", "KD": 10, "createdAt": "2024-01-01"},
            {"keyword": "a", "KD": 10, "createdAt": "2024-01-02"},
        ]
    )
    changed = _matrix(
        [
            {"keyword": "a", "KD": 10, "createdAt": "2024-01-01"},
            {"keyword": "a", "KD": 11, "createdAt": "2024-01-02"},
        ]
    )
    intent_only = _matrix(
        [
            {"keyword": "a", "Intent": "Commercial", "createdAt": "2024-01-01"},
            {"keyword": "a", "Intent": "Informational", "createdAt": "2024-01-02"},
        ]
    )

    assert has_changed(same.row("a")) is False
    assert has_changed(changed.row("a")) is True
    assert has_changed(intent_only.row("a")) is False


def test_has_changed_excludes_single_cell_keywords_even_when_range_matches() -> None:
    matrix = _sample_matrix()
    criteria = FilterCriteria(kd_range=(0.0, 100.0), has_changed_only=True)

    assert apply_filters(matrix, criteria) == ["SEO Tips"]


def test_filter_input_commit_produces_applied_criteria() -> None:
    pending = FilterInput(search_text="seo", kd_min="5", sv_max=" 900 ", source_tag="  ")
    pending.toggle_intent("Commercial")
    pending.toggle_intent("Navigational")
    pending.toggle_intent("Navigational")

    applied = pending.commit()
    pending.search_text = "changed after commit"

    assert applied == FilterCriteria(
        search_text="seo",
        kd_range=(5.0, math.inf),
        sv_range=(-math.inf, 900.0),
        intents=("Commercial",),
        source_tag=ALL_SOURCES,
        has_changed_only=False,
    )
    assert FilterInput().commit().kd_range == OPEN_RANGE


def test_parse_bound_defaults_and_numbers() -> None:
    assert parse_bound("", -math.inf) == -math.inf
    assert parse_bound(None, math.inf) == math.inf
    assert parse_bound("12.5", 0.0) == 12.5
    assert parse_bound(3, 0.0) == 3.0
    assert math.isnan(parse_bound("abc", 0.0))
    assert math.isnan(parse_bound(math.nan, 0.0))


def test_criteria_built_directly_treats_missing_bounds_as_open() -> None:
    matrix = _sample_matrix()

    criteria = FilterCriteria(kd_range=(None, 20), sv_range=("", None))

    assert criteria.kd_range == (-math.inf, 20.0)
    assert criteria.sv_range == OPEN_RANGE
    assert apply_filters(matrix, criteria) == ["SEO Tips"]
    assert query_matrix(matrix, FilterCriteria(kd_range=None)).total_count == 3


def test_criteria_built_directly_with_text_bounds_matches_nothing() -> None:
    matrix = _sample_matrix()

    criteria = FilterCriteria(kd_range=("abc", 20), sv_range=(" 100 ", "5000"))

    assert math.isnan(criteria.kd_range[0])
    assert criteria.sv_range == (100.0, 5000.0)
    assert apply_filters(matrix, criteria) == []
    assert query_matrix(matrix, criteria).total_count == 0
