"""
Static dashboard catalog.

System dashboards come from a generated template registry plus one legacy
fallback template. Each raw template is normalized into a DashboardDefinition
and the set is de-duplicated by key, first occurrence winning, so registry
entries always shadow the legacy fallback.
"""

import copy
import json
import logging
import math
import os
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dashboard_core.config import (
    CATALOG_CACHE_TTL_SECONDS,
    DEFAULT_LAYOUT,
    DEFAULT_TIME,
    SYSTEM_OWNER_ID,
    TEMPLATE_REGISTRY_PATH,
)
from dashboard_core.errors import ValidationError
from dashboard_core.models import DashboardDefinition, DashboardScope

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """Reads ``{"templates": [...]}`` from a generated JSON snapshot."""

    def __init__(self, path: str = TEMPLATE_REGISTRY_PATH):
        self.path = path

    def load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                registry = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Could not read template registry %s: %s", self.path, e)
            return []
        templates = registry.get("templates") if isinstance(registry, dict) else None
        if not isinstance(templates, list):
            logger.warning("Template registry %s has no templates list", self.path)
            return []
        return templates


def legacy_fallback_templates() -> List[Dict[str, Any]]:
    """Templates for installations that predate the registry."""
    return [
        {
            "templateKey": "system.projects_kpi_catalog",
            "packName": "projects",
            "title": "All Project KPIs",
            "description": "KPI-only dashboard that shows every project-scoped metric "
                           "(summed across projects).",
            "version": 0,
            "definition": {
                "time": {"mode": "picker", "default": "last_30_days"},
                "layout": {"grid": {"cols": 12, "rowHeight": 36, "gap": 14}},
                "widgets": [
                    {
                        "key": "kpi_catalog.project_metrics",
                        "kind": "kpi_catalog",
                        "title": "All Metrics (Auto-scoped totals)",
                        "grid": {"x": 0, "y": 0, "w": 12, "h": 8},
                        "time": "inherit",
                        "presentation": {
                            "entityKind": "auto",
                            "owner": {"kind": "feature_pack", "id": "projects"},
                            "onlyWithPoints": False,
                        },
                    },
                ],
            },
        },
    ]


# ── Normalization ────────────────────────────────────────────────────

def normalize_visibility(value: Any) -> str:
    return "private" if str(value or "").strip().lower() == "private" else "public"


def normalize_version(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if math.isfinite(number) else 0


def normalize_scope(value: Any, fallback_pack: Optional[str] = None) -> DashboardScope:
    if isinstance(value, dict):
        kind = str(value.get("kind") or "").strip().lower()
        if kind == "global":
            return DashboardScope.global_()
        if kind == "pack":
            pack = str(value.get("pack") or fallback_pack or "").strip()
            if pack:
                return DashboardScope(kind="pack", pack=pack)
    if fallback_pack:
        return DashboardScope(kind="pack", pack=fallback_pack)
    return DashboardScope.global_()


def normalize_definition(value: Any) -> Dict[str, Any]:
    """
    Coerce a definition document into ``{time, layout, widgets, ...}``.

    JSON strings are parsed when possible. Missing sub-fields are defaulted;
    anything that is still not an object raises ValidationError.
    """
    doc = value
    if isinstance(doc, str) and doc.strip():
        try:
            doc = json.loads(doc)
        except ValueError:
            pass
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ValidationError("definition must be an object")

    widgets = doc.get("widgets")
    layout = doc.get("layout")
    time_cfg = doc.get("time")
    normalized = dict(doc)
    normalized["time"] = time_cfg if isinstance(time_cfg, dict) else copy.deepcopy(DEFAULT_TIME)
    normalized["layout"] = layout if isinstance(layout, dict) else copy.deepcopy(DEFAULT_LAYOUT)
    normalized["widgets"] = widgets if isinstance(widgets, list) else []
    return normalized


def normalize_template(raw: Any, loaded_at: Optional[datetime] = None) -> Optional[DashboardDefinition]:
    """Build a static DashboardDefinition, or None when the template is unusable."""
    if not isinstance(raw, dict):
        return None

    key = str(raw.get("templateKey") or raw.get("key") or "").strip()
    if not key:
        logger.debug("Skipping template without key")
        return None

    pack_name = str(raw.get("packName") or "").strip()
    name = str(raw.get("title") or raw.get("name") or key).strip()
    if not name:
        logger.debug("Skipping template %s with blank name", key)
        return None

    description = raw.get("description")
    try:
        definition = normalize_definition(raw.get("definition"))
    except ValidationError as e:
        logger.debug("Skipping template %s: %s", key, e)
        return None

    return DashboardDefinition(
        id=f"static:{key}",
        key=key,
        name=name,
        description=None if description is None else str(description),
        owner_user_id=SYSTEM_OWNER_ID,
        is_system=True,
        visibility=normalize_visibility(raw.get("visibility")),
        scope=normalize_scope(raw.get("scope"), pack_name or None),
        version=normalize_version(raw.get("version")),
        definition=definition,
        updated_at=loaded_at or datetime.now(timezone.utc),
    )


def dedupe_by_key(sources: Iterable[Iterable[Any]],
                  loaded_at: Optional[datetime] = None) -> List[DashboardDefinition]:
    seen = set()
    out: List[DashboardDefinition] = []
    for templates in sources:
        for raw in templates:
            dashboard = normalize_template(raw, loaded_at)
            if dashboard is None or dashboard.key in seen:
                continue
            seen.add(dashboard.key)
            out.append(dashboard)
    return out


# ── Resolver ─────────────────────────────────────────────────────────

class CatalogResolver:
    """
    Resolves the immutable set of system dashboards.

    With ``cache_ttl`` > 0 the resolved list is reused for at most that many
    seconds before the registry is read again.
    """

    def __init__(self, registry: Optional[TemplateRegistry] = None,
                 cache_ttl: float = CATALOG_CACHE_TTL_SECONDS):
        self.registry = registry or TemplateRegistry()
        self.cache_ttl = cache_ttl
        self._lock = threading.Lock()
        self._cached: Optional[List[DashboardDefinition]] = None
        self._cached_at = 0.0

    def _resolve(self) -> List[DashboardDefinition]:
        loaded_at = datetime.now(timezone.utc)
        return dedupe_by_key([self.registry.load(), legacy_fallback_templates()], loaded_at)

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def get_static_dashboards(self) -> List[DashboardDefinition]:
        if self.cache_ttl <= 0:
            return self._resolve()
        with self._lock:
            fresh = time.monotonic() - self._cached_at < self.cache_ttl
            if self._cached is None or not fresh:
                self._cached = self._resolve()
                self._cached_at = time.monotonic()
            return copy.deepcopy(self._cached)

    def get_static_dashboards_for_pack(self, pack: Optional[str] = None,
                                       include_global: bool = True) -> List[DashboardDefinition]:
        pack = str(pack or "").strip()
        dashboards = self.get_static_dashboards()
        if not pack:
            return dashboards
        out = []
        for dash in dashboards:
            if dash.scope.kind == "pack" and dash.scope.pack == pack:
                out.append(dash)
            elif dash.scope.kind == "global" and include_global:
                out.append(dash)
        return out

    def get_static_dashboard_by_key(self, key: Optional[str]) -> Optional[DashboardDefinition]:
        key = str(key or "").strip()
        if not key:
            return None
        for dash in self.get_static_dashboards():
            if dash.key == key:
                return dash
        return None

    def is_static_dashboard_key(self, key: Optional[str]) -> bool:
        return self.get_static_dashboard_by_key(key) is not None


def merge_catalog(static: Iterable[DashboardDefinition],
                  dynamic: Iterable[DashboardDefinition]) -> List[DashboardDefinition]:
    """Static dashboards first; stored rows never override a static key."""
    merged = list(static)
    keys = {dash.key for dash in merged}
    for dash in dynamic:
        if dash.key in keys:
            logger.warning("Stored dashboard %s collides with a system dashboard; ignored", dash.key)
            continue
        keys.add(dash.key)
        merged.append(dash)
    return merged


# ── Module-level helpers on a default resolver ───────────────────────

_default_resolver: Optional[CatalogResolver] = None


def default_resolver() -> CatalogResolver:
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = CatalogResolver()
    return _default_resolver


def get_static_dashboards() -> List[DashboardDefinition]:
    return default_resolver().get_static_dashboards()


def get_static_dashboards_for_pack(pack: Optional[str] = None,
                                   include_global: bool = True) -> List[DashboardDefinition]:
    return default_resolver().get_static_dashboards_for_pack(pack, include_global)


def get_static_dashboard_by_key(key: Optional[str]) -> Optional[DashboardDefinition]:
    return default_resolver().get_static_dashboard_by_key(key)


def is_static_dashboard_key(key: Optional[str]) -> bool:
    return default_resolver().is_static_dashboard_key(key)
