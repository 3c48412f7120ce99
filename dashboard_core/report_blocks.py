"""
Report block normalization (pie charts).
"""

from typing import Any, Dict, List, Optional

from dashboard_core.config import (
    PIE_DEFAULT_GROUP_BY_KEY,
    PIE_DEFAULT_OTHER_LABEL,
    PIE_DEFAULT_TITLE,
    PIE_TOP_N_DEFAULT,
    PIE_TOP_N_MAX,
    PIE_TOP_N_MIN,
)
from dashboard_core.models import PieReportBlock


def _text(value: Any) -> Optional[str]:
    """Stripped string, or None when *value* is not a non-blank string."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _top_n(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return PIE_TOP_N_DEFAULT
    try:
        number = float(value)
    except (TypeError, ValueError):
        return PIE_TOP_N_DEFAULT
    if number != number:  # NaN
        return PIE_TOP_N_DEFAULT
    return int(max(PIE_TOP_N_MIN, min(PIE_TOP_N_MAX, number)))


def _ordered_unique(keys: List[Any]) -> List[Any]:
    out = []
    for key in keys:
        if key and key not in out:
            out.append(key)
    return out


def normalize_pie_block(partial: Optional[Dict[str, Any]]) -> PieReportBlock:
    """
    Fill in defaults for a partially specified pie block.

    The query never time-buckets and always groups by the keys needed for
    slicing (groupByKey), labels (labelKey) and drill-down ids (rawKey).
    """
    partial = partial if isinstance(partial, dict) else {}

    group_by_key = _text(partial.get("groupByKey")) or PIE_DEFAULT_GROUP_BY_KEY
    label_key = _text(partial.get("labelKey")) or group_by_key
    raw_key = _text(partial.get("rawKey")) or group_by_key

    q = partial.get("query")
    q = q if isinstance(q, dict) else {}
    caller_group_by = q.get("groupBy") if isinstance(q.get("groupBy"), list) else []
    query = dict(q)
    query["metricKey"] = q["metricKey"].strip() if isinstance(q.get("metricKey"), str) else ""
    query["bucket"] = "none"
    query["agg"] = q["agg"] if isinstance(q.get("agg"), str) else "sum"
    query["groupBy"] = _ordered_unique(list(caller_group_by) + [group_by_key, label_key, raw_key])

    return PieReportBlock(
        title=_text(partial.get("title")) or PIE_DEFAULT_TITLE,
        format="usd" if partial.get("format") == "usd" else "number",
        time="all_time" if partial.get("time") == "all_time" else "inherit",
        query=query,
        group_by_key=group_by_key,
        label_key=label_key,
        raw_key=raw_key,
        top_n=_top_n(partial.get("topN")),
        other_label=_text(partial.get("otherLabel")) or PIE_DEFAULT_OTHER_LABEL,
    )
