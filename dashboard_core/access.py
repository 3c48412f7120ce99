"""
Read access to dashboards.

System dashboards are visible to every caller. Stored dashboards follow the
caller's ``read`` scope on dashboards:

  none       no stored dashboard is visible
  own, ldd   public rows, rows the caller owns, and private rows shared with
             the caller by user id, group, role, or an org unit in their scope
  all        every stored row

A hidden dashboard reads exactly like a missing one.
"""

import logging
from typing import List, Optional, Tuple

from dashboard_core.catalog import CatalogResolver, merge_catalog
from dashboard_core.errors import NotFound
from dashboard_core.models import (
    LDD_PRINCIPAL_TYPES,
    DashboardDefinition,
    DenyReason,
    Identity,
    ScopeEntity,
    ScopeMode,
    ScopeVerb,
    ShareOutcome,
)
from dashboard_core.org_scope import BoundedOrgScope, OrgScopeResolver
from dashboard_core.scope import ScopeResolver
from dashboard_core.shares import UNAVAILABLE_MESSAGE
from dashboard_core.store import SqlDashboardStore

logger = logging.getLogger(__name__)


class DashboardReader:
    """Lists and loads dashboards as seen by one caller."""

    def __init__(self, store: SqlDashboardStore, catalog: CatalogResolver,
                 scope_resolver: ScopeResolver, org_scope: OrgScopeResolver):
        self.store = store
        self.catalog = catalog
        self.scope = scope_resolver
        self.org_scope = org_scope if isinstance(org_scope, BoundedOrgScope) else BoundedOrgScope(
            org_scope, timeout=scope_resolver.timeout
        )

    def caller_principals(self, caller: Identity) -> List[Tuple[str, str]]:
        """Every (principal_type, principal_id) a share could name the caller by."""
        principals = [("user", caller.subject_id)]
        principals += [("group", g) for g in caller.groups]
        principals += [("role", r) for r in caller.roles]
        # an unavailable org scope contributes no units
        units = self.org_scope.resolve_scope(caller).units
        principals += sorted(u for u in units if u[0] in LDD_PRINCIPAL_TYPES)
        return principals

    def _read_mode(self) -> Optional[ScopeMode]:
        resolution = self.scope.resolve_detailed(ScopeVerb.READ, ScopeEntity.DASHBOARDS)
        if resolution.degraded:
            logger.info("Dashboard read denied: scope probes unavailable")
            return None
        return resolution.mode

    def can_view(self, dashboard: DashboardDefinition, caller: Identity, mode: ScopeMode) -> bool:
        if dashboard.is_system or mode is ScopeMode.ALL:
            return True
        if mode is ScopeMode.NONE:
            return False
        if dashboard.visibility != "private" or dashboard.owner_user_id == caller.subject_id:
            return True
        return self.store.has_share(dashboard.id, self.caller_principals(caller))

    def get_dashboard(self, key: str, caller: Identity) -> ShareOutcome:
        key = str(key or "").strip()
        static = self.catalog.get_static_dashboard_by_key(key)
        if static is not None:
            return ShareOutcome(data=static)

        mode = self._read_mode()
        if mode is None:
            return ShareOutcome.deny(DenyReason.UPSTREAM_UNAVAILABLE, UNAVAILABLE_MESSAGE)
        dashboard = self.store.find_by_key(key)
        if dashboard is None or not self.can_view(dashboard, caller, mode):
            raise NotFound("Dashboard not found")
        return ShareOutcome(data=dashboard)

    def list_dashboards(self, caller: Identity, pack: Optional[str] = None,
                        include_global: bool = True) -> ShareOutcome:
        pack = str(pack or "").strip()
        static = self.catalog.get_static_dashboards_for_pack(pack, include_global)

        mode = self._read_mode()
        if mode is None:
            return ShareOutcome.deny(DenyReason.UPSTREAM_UNAVAILABLE, UNAVAILABLE_MESSAGE)
        if mode is ScopeMode.NONE:
            return ShareOutcome(data=static)

        if mode is ScopeMode.ALL:
            stored = self.store.list_dashboards(include_private=True)
        else:
            stored = self.store.list_dashboards(
                owner_user_id=caller.subject_id, principals=self.caller_principals(caller),
            )
        if pack:
            stored = [
                d for d in stored
                if (d.scope.kind == "pack" and d.scope.pack == pack)
                or (d.scope.kind == "global" and include_global)
            ]
        return ShareOutcome(data=merge_catalog(static, stored))
