"""
Unit tests for pie report block normalization.
"""

import pytest

from dashboard_core.report_blocks import normalize_pie_block


def test_empty_block_gets_all_defaults():
    block = normalize_pie_block({})
    assert block.to_dict() == {
        "kind": "pie_v0",
        "title": "Pie",
        "format": "number",
        "time": "inherit",
        "query": {"metricKey": "", "bucket": "none", "agg": "sum", "groupBy": ["region"]},
        "groupByKey": "region",
        "labelKey": "region",
        "rawKey": "region",
        "topN": 5,
        "otherLabel": "Other",
    }


def test_none_input_is_treated_as_empty():
    assert normalize_pie_block(None).title == "Pie"


@pytest.mark.parametrize("raw,expected", [
    (999, 25), (0, 1), (-3, 1), (7, 7), ("12", 12), ("lots", 5), (None, 5), (True, 5),
])
def test_top_n_clamped(raw, expected):
    assert normalize_pie_block({"topN": raw}).top_n == expected


def test_explicit_values_kept():
    block = normalize_pie_block({
        "title": "  Pipeline by stage ",
        "format": "usd",
        "time": "all_time",
        "groupByKey": "stage_id",
        "labelKey": "stage_name",
        "otherLabel": "Rest",
    })
    assert block.title == "Pipeline by stage"
    assert block.format == "usd"
    assert block.time == "all_time"
    assert block.label_key == "stage_name"
    assert block.raw_key == "stage_id"
    assert block.other_label == "Rest"


def test_unknown_format_and_time_fall_back():
    block = normalize_pie_block({"format": "eur", "time": "last_week"})
    assert block.format == "number"
    assert block.time == "inherit"


def test_query_forced_to_no_bucket_and_grouped_by_needed_keys():
    block = normalize_pie_block({
        "groupByKey": "stage_id",
        "labelKey": "stage_name",
        "query": {
            "metricKey": " deals.amount ",
            "bucket": "month",
            "agg": "avg",
            "groupBy": ["owner", "stage_id"],
            "params": {"pipeline": "main"},
        },
    })
    assert block.query["bucket"] == "none"
    assert block.query["metricKey"] == "deals.amount"
    assert block.query["agg"] == "avg"
    assert block.query["params"] == {"pipeline": "main"}
    assert block.query["groupBy"] == ["owner", "stage_id", "stage_name"]
