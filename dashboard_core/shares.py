"""
ACL share management for dashboards.

Only a dashboard's owner may list, add or remove its shares, whatever the
caller's write scope is, and a ``none`` write scope blocks the owner too.
Adding a share additionally requires a fine-grained share grant for the
target's category, plus ``share_outside`` when the target lies outside the
caller's organizational scope (groups and roles always do).
"""

import logging
from typing import Optional, Tuple

from dashboard_core.authz import SHARE_OUTSIDE_KEY, share_action_key
from dashboard_core.errors import NotFound, SelfShareRejected, ValidationError
from dashboard_core.models import (
    LDD_PRINCIPAL_TYPES,
    PRINCIPAL_TYPES,
    DashboardDefinition,
    DenyReason,
    Identity,
    ScopeEntity,
    ScopeMode,
    ScopeVerb,
    ShareCategory,
    ShareOutcome,
    SharePermission,
)
from dashboard_core.org_scope import BoundedOrgScope, OrgScopeResolver
from dashboard_core.scope import ScopeResolver
from dashboard_core.store import SqlDashboardStore

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Authorization service unavailable"


def resolve_share_category(principal_type: str) -> Optional[ShareCategory]:
    if principal_type == "user":
        return ShareCategory.USER
    if principal_type in ("group", "role"):
        return ShareCategory.GROUP
    if principal_type in LDD_PRINCIPAL_TYPES:
        return ShareCategory.LDD
    return None


def normalize_permission(value) -> str:
    raw = str(value or SharePermission.VIEW.value).strip().lower()
    return SharePermission.FULL.value if raw == SharePermission.FULL.value else SharePermission.VIEW.value


def _require_key(dashboard_key) -> str:
    key = str(dashboard_key or "").strip()
    if not key:
        raise ValidationError("Missing key")
    return key


def _require_principal(principal_type, principal_id) -> Tuple[str, str]:
    principal_type = str(principal_type or "").strip()
    principal_id = str(principal_id or "").strip()
    if not principal_type or not principal_id:
        raise ValidationError("principalType and principalId are required")
    return principal_type, principal_id


class ShareManager:
    """Enforces share rules, then delegates persistence to the store."""

    def __init__(self, store: SqlDashboardStore, scope_resolver: ScopeResolver,
                 org_scope: OrgScopeResolver):
        self.store = store
        self.scope = scope_resolver
        self.org_scope = org_scope if isinstance(org_scope, BoundedOrgScope) else BoundedOrgScope(
            org_scope, timeout=scope_resolver.timeout
        )

    # ── Checks ───────────────────────────────────────────────────────

    def _load_dashboard(self, key: str) -> DashboardDefinition:
        dashboard = self.store.find_by_key(key)
        if dashboard is None:
            raise NotFound("Dashboard not found")
        return dashboard

    def check_manage_access(self, dashboard: DashboardDefinition,
                            caller: Identity) -> Optional[ShareOutcome]:
        """Return a denial, or None when *caller* may manage the dashboard's shares."""
        resolution = self.scope.resolve_detailed(ScopeVerb.WRITE, ScopeEntity.DASHBOARDS)
        if resolution.degraded:
            logger.info("Share management on %s denied: scope probes unavailable", dashboard.key)
            return ShareOutcome.deny(DenyReason.UPSTREAM_UNAVAILABLE, UNAVAILABLE_MESSAGE)

        mode = resolution.mode
        if mode is ScopeMode.NONE:
            logger.info("Share management on %s denied for %s: scope none",
                        dashboard.key, caller.subject_id)
            return ShareOutcome.deny(DenyReason.SCOPE_NONE, action_key=resolution.action_key)

        # own, ldd and all all reduce to ownership: dashboards carry no org-unit
        # fields, and sharing stays owner-only even under the broadest scope.
        if dashboard.owner_user_id != caller.subject_id:
            logger.info("Share management on %s denied for %s: not owner (mode %s)",
                        dashboard.key, caller.subject_id, mode.value)
            return ShareOutcome.deny(DenyReason.NOT_OWNER)
        return None

    def _require_action(self, action_key: str, reason: DenyReason) -> Optional[ShareOutcome]:
        result = self.scope.check(action_key)
        if result.unavailable:
            return ShareOutcome.deny(DenyReason.UPSTREAM_UNAVAILABLE, UNAVAILABLE_MESSAGE, action_key)
        if not result.granted:
            return ShareOutcome.deny(reason, action_key=action_key)
        return None

    def _require_share_outside(self, scope_unknown: bool) -> Optional[ShareOutcome]:
        denied = self._require_action(SHARE_OUTSIDE_KEY, DenyReason.MISSING_SHARE_OUTSIDE)
        if denied is not None and scope_unknown:
            # the target may well have been inside scope
            return ShareOutcome.deny(DenyReason.UPSTREAM_UNAVAILABLE, UNAVAILABLE_MESSAGE,
                                     SHARE_OUTSIDE_KEY)
        return denied

    def check_share_target(self, caller: Identity, principal_type: str,
                           principal_id: str) -> Optional[ShareOutcome]:
        """Return a denial, or None when *caller* may share with the target."""
        category = resolve_share_category(principal_type)
        if category is None:
            raise ValidationError(
                "principalType must be user, group, role, location, division, or department"
            )

        denied = self._require_action(share_action_key(category), DenyReason.MISSING_SHARE_GRANT)
        if denied is not None:
            return denied

        if category is ShareCategory.GROUP:
            # groups and roles have no org-unit mapping
            return self._require_share_outside(scope_unknown=False)

        org_scope = self.org_scope.resolve_scope(caller)
        if category is ShareCategory.USER:
            in_scope = self.org_scope.is_user_in_scope(principal_id, org_scope)
        else:
            in_scope = self.org_scope.is_org_unit_in_scope(principal_type, principal_id, org_scope)
        if in_scope:
            return None
        return self._require_share_outside(scope_unknown=in_scope is None)

    # ── Operations ───────────────────────────────────────────────────

    def list_shares(self, dashboard_key: str, caller: Identity) -> ShareOutcome:
        dashboard = self._load_dashboard(_require_key(dashboard_key))
        denied = self.check_manage_access(dashboard, caller)
        if denied is not None:
            return denied
        return ShareOutcome(data=self.store.list_shares(dashboard.id))

    def add_share(self, dashboard_key: str, caller: Identity, principal_type: str,
                  principal_id: str, permission: str = SharePermission.VIEW.value) -> ShareOutcome:
        key = _require_key(dashboard_key)
        principal_type, principal_id = _require_principal(principal_type, principal_id)
        if principal_type not in PRINCIPAL_TYPES:
            raise ValidationError(
                "principalType must be user, group, role, location, division, or department"
            )
        if principal_type == "user" and principal_id == caller.subject_id:
            raise SelfShareRejected("Cannot share with yourself")

        denied = self.check_share_target(caller, principal_type, principal_id)
        if denied is not None:
            logger.info("Share of %s with %s:%s denied for %s: %s", key, principal_type,
                        principal_id, caller.subject_id, denied.denial.reason.value)
            return denied

        dashboard = self._load_dashboard(key)
        denied = self.check_manage_access(dashboard, caller)
        if denied is not None:
            return denied

        share = self.store.upsert_share(
            dashboard.id,
            principal_type,
            principal_id,
            normalize_permission(permission),
            shared_by=caller.subject_id,
            shared_by_name=caller.display_name,
        )
        logger.info("Dashboard %s shared with %s:%s (%s) by %s", key, principal_type,
                    principal_id, share.permission, caller.subject_id)
        return ShareOutcome(data=share)

    def remove_share(self, dashboard_key: str, caller: Identity, principal_type: str,
                     principal_id: str) -> ShareOutcome:
        key = _require_key(dashboard_key)
        principal_type, principal_id = _require_principal(principal_type, principal_id)

        dashboard = self._load_dashboard(key)
        denied = self.check_manage_access(dashboard, caller)
        if denied is not None:
            return denied

        if not self.store.delete_share(dashboard.id, principal_type, principal_id):
            raise NotFound("Share not found")
        logger.info("Dashboard %s unshared from %s:%s by %s", key, principal_type,
                    principal_id, caller.subject_id)
        return ShareOutcome(data=True)
