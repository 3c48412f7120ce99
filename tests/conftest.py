"""
Shared fixtures and fakes.
"""

import time

import pytest

from dashboard_core.catalog import CatalogResolver
from dashboard_core.database import create_schema, make_engine
from dashboard_core.models import CheckResult, Identity, OrgScope
from dashboard_core.store import SqlDashboardStore


# ── Fakes ────────────────────────────────────────────────────────────

class FakeProvider:
    """AuthorizationProvider answering from a fixed set of granted keys."""
    def __init__(self, granted=(), failing=(), slow=(), delay=0.5):
        self.granted = set(granted)
        self.failing = set(failing)
        self.slow = set(slow)
        self.delay = delay
        self.calls = []

    def check(self, action_key):
        self.calls.append(action_key)
        if action_key in self.failing:
            raise ConnectionError("auth service down")
        if action_key in self.slow:
            time.sleep(self.delay)
        return CheckResult(granted=action_key in self.granted, source="fake")


class FakeOrgScope:
    """OrgScopeResolver over an in-memory {user_id: {(unit_type, unit_id)}} map."""
    def __init__(self, assignments=None, fail=False):
        self.assignments = assignments or {}
        self.fail = fail

    def _units(self, user_id):
        return frozenset(self.assignments.get(user_id, set()))

    def resolve_scope(self, identity):
        if self.fail:
            raise ConnectionError("org scope service down")
        return OrgScope(units=self._units(identity.subject_id))

    def is_user_in_scope(self, user_id, scope):
        return bool(self._units(user_id) & scope.units)

    def is_org_unit_in_scope(self, unit_type, unit_id, scope):
        return scope.contains(unit_type, unit_id)


class FakeRegistry:
    def __init__(self, templates=None):
        self.templates = templates or []
        self.loads = 0

    def load(self):
        self.loads += 1
        return list(self.templates)


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'dashboards.db'}")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def catalog():
    return CatalogResolver(registry=FakeRegistry(), cache_ttl=0)


@pytest.fixture
def store(engine, catalog):
    return SqlDashboardStore(engine, catalog=catalog)


@pytest.fixture
def alice():
    return Identity(subject_id="alice", email="alice@example.com", name="Alice",
                    roles=["Editor"], groups=["g-sales"])


@pytest.fixture
def bob():
    return Identity(subject_id="bob", email="bob@example.com", name="Bob")
