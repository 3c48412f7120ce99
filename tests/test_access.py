"""
Unit tests for dashboard read access: read scope, ownership and share grants.
"""

import pytest

from dashboard_core.access import DashboardReader
from dashboard_core.errors import NotFound
from dashboard_core.models import DashboardScope, DenyReason, Identity
from dashboard_core.scope import ScopeResolver

from conftest import FakeOrgScope, FakeProvider

READ = "dashboard-core.dashboards.read.scope"


# ── Helpers ──────────────────────────────────────────────────────────

def make_reader(store, catalog, granted=(), failing=(), org=None):
    provider = FakeProvider(granted=granted, failing=failing)
    return DashboardReader(store, catalog, ScopeResolver(provider, timeout=2), org or FakeOrgScope())


@pytest.fixture
def private_dash(store):
    return store.create_dashboard(
        key="team.revenue", name="Revenue", definition={"widgets": []}, owner_user_id="alice",
    )


def share(store, dash, principal_type, principal_id):
    store.upsert_share(dash.id, principal_type, principal_id, "view", "alice", "Alice")


# ── Tests: share grants ──────────────────────────────────────────────

def test_private_dashboard_hidden_without_share(store, catalog, private_dash, bob):
    with pytest.raises(NotFound):
        make_reader(store, catalog).get_dashboard("team.revenue", bob)


def test_owner_sees_private_dashboard(store, catalog, private_dash, alice):
    assert make_reader(store, catalog).get_dashboard("team.revenue", alice).data.id == private_dash.id


def test_user_share_grants_read(store, catalog, private_dash, bob):
    share(store, private_dash, "user", "bob")
    outcome = make_reader(store, catalog).get_dashboard("team.revenue", bob)
    assert outcome.ok
    assert outcome.data.key == "team.revenue"


def test_group_share_grants_read(store, catalog, private_dash):
    share(store, private_dash, "group", "g-ops")
    member = Identity(subject_id="dave", groups=["g-ops"])
    assert make_reader(store, catalog).get_dashboard("team.revenue", member).ok


def test_role_share_matches_case_insensitively(store, catalog, private_dash):
    share(store, private_dash, "role", "Analyst")
    member = Identity(subject_id="dave", roles=["analyst"])
    assert make_reader(store, catalog).get_dashboard("team.revenue", member).ok


def test_org_unit_share_uses_caller_org_scope(store, catalog, private_dash, bob):
    share(store, private_dash, "location", "nyc")
    org = FakeOrgScope({"bob": {("location", "nyc")}})
    assert make_reader(store, catalog, org=org).get_dashboard("team.revenue", bob).ok

    elsewhere = make_reader(store, catalog, org=FakeOrgScope({"bob": {("location", "sfo")}}))
    with pytest.raises(NotFound):
        elsewhere.get_dashboard("team.revenue", bob)


def test_org_unit_share_fails_closed_when_scope_unavailable(store, catalog, private_dash, bob):
    share(store, private_dash, "location", "nyc")
    reader = make_reader(store, catalog, org=FakeOrgScope({"bob": {("location", "nyc")}}, fail=True))
    with pytest.raises(NotFound):
        reader.get_dashboard("team.revenue", bob)


def test_list_includes_shared_dashboards(store, catalog, private_dash, bob):
    share(store, private_dash, "user", "bob")
    store.create_dashboard(key="team.other", name="Other", definition={}, owner_user_id="alice")
    keys = [d.key for d in make_reader(store, catalog).list_dashboards(bob).data]
    assert "team.revenue" in keys
    assert "team.other" not in keys
    assert "system.projects_kpi_catalog" in keys


# ── Tests: read scope ────────────────────────────────────────────────

def test_scope_none_hides_stored_but_not_system(store, catalog, private_dash, alice):
    reader = make_reader(store, catalog, granted={f"{READ}.none"})
    with pytest.raises(NotFound):
        reader.get_dashboard("team.revenue", alice)
    assert reader.get_dashboard("system.projects_kpi_catalog", alice).ok
    keys = [d.key for d in reader.list_dashboards(alice).data]
    assert keys == ["system.projects_kpi_catalog"]


def test_scope_all_sees_every_private_dashboard(store, catalog, private_dash, bob):
    reader = make_reader(store, catalog, granted={f"{READ}.all"})
    assert reader.get_dashboard("team.revenue", bob).ok
    assert "team.revenue" in [d.key for d in reader.list_dashboards(bob).data]


def test_degraded_read_scope_is_reported(store, catalog, private_dash, alice):
    reader = make_reader(store, catalog, failing={f"{READ}.none"})
    for outcome in (reader.get_dashboard("team.revenue", alice), reader.list_dashboards(alice)):
        assert not outcome.ok
        assert outcome.denial.reason is DenyReason.UPSTREAM_UNAVAILABLE


def test_list_filters_stored_by_pack(store, catalog, alice):
    store.create_dashboard(key="team.crm", name="CRM", definition={}, owner_user_id="alice",
                           scope=DashboardScope(kind="pack", pack="crm"))
    store.create_dashboard(key="team.ops", name="Ops", definition={}, owner_user_id="alice",
                           scope=DashboardScope(kind="pack", pack="ops"))
    keys = [d.key for d in make_reader(store, catalog).list_dashboards(alice, "crm", False).data]
    assert keys == ["team.crm"]
