"""
Unit tests for the static dashboard catalog.
"""

import json

import pytest

from dashboard_core.catalog import (
    CatalogResolver,
    TemplateRegistry,
    merge_catalog,
    normalize_definition,
    normalize_scope,
    normalize_template,
    normalize_version,
    normalize_visibility,
)
from dashboard_core.errors import ValidationError
from dashboard_core.models import DashboardScope

from conftest import FakeRegistry

LEGACY_KEY = "system.projects_kpi_catalog"


def resolver_with(*templates, ttl=0):
    return CatalogResolver(registry=FakeRegistry(list(templates)), cache_ttl=ttl)


# ── Tests: registry ──────────────────────────────────────────────────

def test_registry_missing_file_is_empty(tmp_path):
    assert TemplateRegistry(str(tmp_path / "nope.json")).load() == []


def test_registry_bad_json_is_empty(tmp_path):
    path = tmp_path / "reg.json"
    path.write_text("{not json")
    assert TemplateRegistry(str(path)).load() == []


def test_registry_without_templates_list_is_empty(tmp_path):
    path = tmp_path / "reg.json"
    path.write_text(json.dumps({"templates": {"a": 1}}))
    assert TemplateRegistry(str(path)).load() == []


def test_registry_reads_templates(tmp_path):
    path = tmp_path / "reg.json"
    path.write_text(json.dumps({"templates": [{"templateKey": "system.a", "title": "A"}]}))
    resolver = CatalogResolver(registry=TemplateRegistry(str(path)), cache_ttl=0)
    assert [d.key for d in resolver.get_static_dashboards()] == ["system.a", LEGACY_KEY]


# ── Tests: resolution ────────────────────────────────────────────────

def test_empty_registry_still_has_legacy_fallback():
    dashboards = resolver_with().get_static_dashboards()
    assert [d.key for d in dashboards] == [LEGACY_KEY]
    legacy = dashboards[0]
    assert legacy.id == f"static:{LEGACY_KEY}"
    assert legacy.owner_user_id == "system"
    assert legacy.is_system is True
    assert legacy.visibility == "public"
    assert legacy.scope == DashboardScope(kind="pack", pack="projects")
    assert legacy.pack_name == "projects"
    assert legacy.definition["widgets"][0]["kind"] == "kpi_catalog"


def test_registry_entry_shadows_legacy_fallback():
    dashboards = resolver_with({"templateKey": LEGACY_KEY, "title": "Custom KPIs", "version": 3}) \
        .get_static_dashboards()
    assert len(dashboards) == 1
    assert dashboards[0].name == "Custom KPIs"
    assert dashboards[0].version == 3


def test_duplicate_keys_first_wins():
    dashboards = resolver_with(
        {"key": "system.a", "title": "First"},
        {"key": "system.a", "title": "Second"},
    ).get_static_dashboards()
    keys = [d.key for d in dashboards]
    assert len(keys) == len(set(keys))
    assert dashboards[0].name == "First"


def test_invalid_templates_are_skipped():
    dashboards = resolver_with(
        "not-a-dict",
        {"title": "no key"},
        {"key": "system.blank", "title": "   "},
        {"key": "system.bad_def", "definition": [1, 2]},
        {"key": "system.ok"},
    ).get_static_dashboards()
    assert [d.key for d in dashboards] == ["system.ok", LEGACY_KEY]
    assert dashboards[0].name == "system.ok"


def test_for_pack_excludes_global_when_asked():
    resolver = resolver_with(
        {"key": "system.global", "scope": {"kind": "global"}},
        {"key": "projects.one", "packName": "projects"},
        {"key": "crm.one", "scope": {"kind": "pack", "pack": "crm"}},
    )
    only_pack = resolver.get_static_dashboards_for_pack("projects", include_global=False)
    assert {d.key for d in only_pack} == {"projects.one", LEGACY_KEY}
    assert all(d.scope.kind == "pack" and d.scope.pack == "projects" for d in only_pack)

    with_global = resolver.get_static_dashboards_for_pack("projects")
    assert {d.key for d in with_global} == {"system.global", "projects.one", LEGACY_KEY}


def test_for_pack_blank_returns_everything():
    resolver = resolver_with({"key": "crm.one", "packName": "crm"})
    assert len(resolver.get_static_dashboards_for_pack("  ", include_global=False)) == 2


def test_lookup_by_key():
    resolver = resolver_with({"key": "system.a"})
    assert resolver.get_static_dashboard_by_key(" system.a ").key == "system.a"
    assert resolver.get_static_dashboard_by_key("") is None
    assert resolver.is_static_dashboard_key(LEGACY_KEY) is True
    assert resolver.is_static_dashboard_key("team.mine") is False


def test_cache_ttl_reuses_registry_snapshot():
    registry = FakeRegistry([{"key": "system.a"}])
    cached = CatalogResolver(registry=registry, cache_ttl=60)
    cached.get_static_dashboards()
    cached.get_static_dashboards()
    assert registry.loads == 1
    cached.invalidate()
    cached.get_static_dashboards()
    assert registry.loads == 2


def test_cached_dashboards_are_isolated_from_callers():
    cached = resolver_with({"key": "system.a", "definition": {"widgets": [{"key": "w1"}]}}, ttl=60)
    first = cached.get_static_dashboard_by_key("system.a")
    first.name = "changed"
    first.definition["widgets"].append({"key": "w2"})
    first.definition["layout"]["grid"]["cols"] = 1

    again = cached.get_static_dashboard_by_key("system.a")
    assert again.name == "system.a"
    assert again.definition["widgets"] == [{"key": "w1"}]
    assert again.definition["layout"]["grid"]["cols"] == 12


def test_no_cache_reads_registry_every_time():
    registry = FakeRegistry([{"key": "system.a"}])
    resolver = CatalogResolver(registry=registry, cache_ttl=0)
    resolver.get_static_dashboards()
    resolver.get_static_dashboards()
    assert registry.loads == 2


# ── Tests: normalization ─────────────────────────────────────────────

@pytest.mark.parametrize("raw,expected", [
    (None, "public"), ("PUBLIC", "public"), (" private ", "private"), ("secret", "public"),
])
def test_normalize_visibility(raw, expected):
    assert normalize_visibility(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    (None, 0), ("7", 7), (2.9, 2), ("abc", 0), (float("inf"), 0), (float("nan"), 0),
])
def test_normalize_version(raw, expected):
    assert normalize_version(raw) == expected


def test_normalize_scope_rules():
    assert normalize_scope({"kind": "Global"}, "projects") == DashboardScope(kind="global")
    assert normalize_scope({"kind": "pack", "pack": "crm"}, "projects") == \
        DashboardScope(kind="pack", pack="crm")
    assert normalize_scope({"kind": "pack"}, "projects") == DashboardScope(kind="pack", pack="projects")
    assert normalize_scope({"kind": "pack"}) == DashboardScope(kind="global")
    assert normalize_scope(None, "projects") == DashboardScope(kind="pack", pack="projects")
    assert normalize_scope("weird") == DashboardScope(kind="global")


def test_normalize_definition_defaults():
    doc = normalize_definition(None)
    assert doc == {
        "time": {"mode": "picker", "default": "last_30_days"},
        "layout": {"grid": {"cols": 12, "rowHeight": 36, "gap": 14}},
        "widgets": [],
    }


def test_normalize_definition_parses_json_and_keeps_extra_fields():
    doc = normalize_definition('{"widgets": [{"key": "w"}], "theme": "dark", "layout": 5}')
    assert doc["widgets"] == [{"key": "w"}]
    assert doc["theme"] == "dark"
    assert doc["layout"] == {"grid": {"cols": 12, "rowHeight": 36, "gap": 14}}


@pytest.mark.parametrize("raw", ["not json", 42, [1, 2]])
def test_normalize_definition_rejects_non_objects(raw):
    with pytest.raises(ValidationError, match="definition must be an object"):
        normalize_definition(raw)


def test_normalize_template_fields():
    dash = normalize_template({
        "templateKey": " system.overview ",
        "key": "ignored",
        "title": " Overview ",
        "description": 12,
        "visibility": "private",
        "version": "4",
    })
    assert dash.key == "system.overview"
    assert dash.name == "Overview"
    assert dash.description == "12"
    assert dash.visibility == "private"
    assert dash.version == 4
    assert dash.scope.kind == "global"
    assert dash.pack_name is None


# ── Tests: merge ─────────────────────────────────────────────────────

def test_merge_catalog_never_overrides_static_keys():
    static = resolver_with({"key": "system.a", "title": "Static A"}).get_static_dashboards()
    stored = [
        normalize_template({"key": "system.a", "title": "Stored A"}),
        normalize_template({"key": "team.b", "title": "Stored B"}),
    ]
    merged = merge_catalog(static, stored)
    names = {d.key: d.name for d in merged}
    assert names["system.a"] == "Static A"
    assert "team.b" in names
    assert len(merged) == 3
