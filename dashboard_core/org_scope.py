"""
Organizational scope (locations, divisions, departments) of a caller.
"""

import logging
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine

from dashboard_core.config import UPSTREAM_TIMEOUT_SECONDS
from dashboard_core.database import org_assignments
from dashboard_core.errors import UpstreamUnavailable
from dashboard_core.models import Identity, OrgScope
from dashboard_core.upstream import bounded_call

logger = logging.getLogger(__name__)


class OrgScopeResolver(Protocol):

    def resolve_scope(self, identity: Identity) -> OrgScope:
        ...

    def is_user_in_scope(self, user_id: str, scope: OrgScope) -> bool:
        ...

    def is_org_unit_in_scope(self, unit_type: str, unit_id: str, scope: OrgScope) -> bool:
        ...


class SqlOrgScopeResolver:
    """Org scope backed by the ``org_assignments`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _units_for(self, user_id: str):
        c = org_assignments.c
        stmt = select(c.unit_type, c.unit_id).where(c.user_id == user_id)
        with self.engine.connect() as conn:
            return frozenset((str(t), str(i)) for t, i in conn.execute(stmt))

    def resolve_scope(self, identity: Identity) -> OrgScope:
        return OrgScope(units=self._units_for(identity.subject_id))

    def is_user_in_scope(self, user_id: str, scope: OrgScope) -> bool:
        if not scope.units:
            return False
        return bool(self._units_for(user_id) & scope.units)

    def is_org_unit_in_scope(self, unit_type: str, unit_id: str, scope: OrgScope) -> bool:
        return scope.contains(unit_type, unit_id)


class BoundedOrgScope:
    """
    Wraps an OrgScopeResolver so each call is timeout-bounded and fails closed:
    an unreachable resolver yields an empty scope, and membership questions
    answer "outside".
    """

    def __init__(self, resolver: OrgScopeResolver,
                 timeout: Optional[float] = UPSTREAM_TIMEOUT_SECONDS):
        self.resolver = resolver
        self.timeout = timeout

    def resolve_scope(self, identity: Identity) -> OrgScope:
        try:
            return bounded_call(self.resolver.resolve_scope, identity,
                                timeout=self.timeout, label="org scope resolve")
        except UpstreamUnavailable:
            return OrgScope(unavailable=True)

    def is_user_in_scope(self, user_id: str, scope: OrgScope) -> Optional[bool]:
        """True/False, or None when the resolver could not answer."""
        if scope.unavailable:
            return None
        try:
            return bool(bounded_call(self.resolver.is_user_in_scope, user_id, scope,
                                     timeout=self.timeout, label="org scope user lookup"))
        except UpstreamUnavailable:
            return None

    def is_org_unit_in_scope(self, unit_type: str, unit_id: str,
                             scope: OrgScope) -> Optional[bool]:
        if scope.unavailable:
            return None
        try:
            return bool(bounded_call(self.resolver.is_org_unit_in_scope,
                                     unit_type, unit_id, scope,
                                     timeout=self.timeout, label="org scope unit lookup"))
        except UpstreamUnavailable:
            return None
