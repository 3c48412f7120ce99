"""
SQL-backed dashboard store: dashboard rows and their ACL shares.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from dashboard_core.catalog import CatalogResolver
from dashboard_core.config import SYSTEM_OWNER_ID, UPSTREAM_TIMEOUT_SECONDS
from dashboard_core.database import dashboard_definition_shares, dashboard_definitions
from dashboard_core.errors import DuplicateKey, UpstreamUnavailable, ValidationError
from dashboard_core.models import DashboardDefinition, DashboardScope, DashboardShare
from dashboard_core.upstream import bounded_call

logger = logging.getLogger(__name__)

d = dashboard_definitions.c
s = dashboard_definition_shares.c


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_dashboard(row) -> DashboardDefinition:
    scope = row["scope"] or {}
    if scope.get("kind") == "pack" and scope.get("pack"):
        dash_scope = DashboardScope(kind="pack", pack=scope["pack"])
    else:
        dash_scope = DashboardScope.global_()
    return DashboardDefinition(
        id=str(row["id"]),
        key=row["key"],
        name=row["name"],
        description=row["description"],
        owner_user_id=row["owner_user_id"],
        is_system=bool(row["is_system"]),
        visibility=row["visibility"],
        scope=dash_scope,
        version=int(row["version"] or 0),
        definition=row["definition"] or {},
        updated_at=row["updated_at"],
        created_at=row["created_at"],
    )


def _row_to_share(row) -> DashboardShare:
    return DashboardShare(
        id=str(row["id"]),
        dashboard_id=str(row["dashboard_id"]),
        principal_type=row["principal_type"],
        principal_id=row["principal_id"],
        permission=row["permission"] or "view",
        shared_by=row["shared_by"],
        shared_by_name=row["shared_by_name"],
        created_at=row["created_at"],
    )


def _principal_clause(principals: Iterable[Tuple[str, str]]):
    """OR of share-row matches for (principal_type, principal_id) pairs, or None."""
    clauses = []
    for principal_type, principal_id in principals:
        if principal_type == "role":
            # role names are matched case-insensitively, as grants are
            clauses.append(and_(s.principal_type == "role",
                                func.lower(s.principal_id) == principal_id.lower()))
        else:
            clauses.append(and_(s.principal_type == principal_type,
                                s.principal_id == principal_id))
    return or_(*clauses) if clauses else None


class SqlDashboardStore:
    """
    Row CRUD over ``dashboard_definitions`` and ``dashboard_definition_shares``.

    Keys are unique across the table, and ``create_dashboard`` also refuses keys
    owned by the static catalog. Shares are unique per
    (dashboard_id, principal_type, principal_id).

    Every round-trip runs through ``bounded_call``: a lookup that fails or times
    out reads as "not found", any other operation raises UpstreamUnavailable.
    """

    def __init__(self, engine: Engine, catalog: Optional[CatalogResolver] = None,
                 timeout: Optional[float] = UPSTREAM_TIMEOUT_SECONDS):
        self.engine = engine
        self.catalog = catalog
        self.timeout = timeout

    def _bounded(self, fn, *args, label: str):
        return bounded_call(fn, *args, timeout=self.timeout, label=label)

    # ── Dashboards ───────────────────────────────────────────────────

    def _fetch_dashboard(self, key: str):
        stmt = select(dashboard_definitions).where(d.key == key).limit(1)
        with self.engine.connect() as conn:
            return conn.execute(stmt).mappings().first()

    def find_by_key(self, key: str) -> Optional[DashboardDefinition]:
        """Return the stored dashboard, or None. Read failures count as not found."""
        try:
            row = self._bounded(self._fetch_dashboard, key, label=f"dashboard lookup {key!r}")
        except UpstreamUnavailable as e:
            logger.error("Dashboard lookup for %r failed, treating as not found: %s", key, e)
            return None
        return _row_to_dashboard(row) if row else None

    def _fetch_dashboards(self, where):
        stmt = select(dashboard_definitions).order_by(d.name, d.key)
        if where is not None:
            stmt = stmt.where(where)
        with self.engine.connect() as conn:
            return [_row_to_dashboard(r) for r in conn.execute(stmt).mappings()]

    def list_dashboards(
        self,
        owner_user_id: Optional[str] = None,
        principals: Iterable[Tuple[str, str]] = (),
        include_private: bool = False,
    ) -> List[DashboardDefinition]:
        """
        Public dashboards, plus the ones owned by *owner_user_id*, plus private
        ones shared with any of *principals*. ``include_private`` lists every row.
        """
        where = None
        if not include_private:
            where = d.visibility == "public"
            if owner_user_id:
                where = or_(where, d.owner_user_id == owner_user_id)
            shared = _principal_clause(principals)
            if shared is not None:
                where = or_(where, select(s.id).where(s.dashboard_id == d.id, shared).exists())
        return self._bounded(self._fetch_dashboards, where, label="dashboard list")

    def _insert_dashboard(self, values: Dict[str, Any]) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(dashboard_definitions).values(**values))
        except IntegrityError as e:
            raise DuplicateKey(f"Dashboard key {values['key']!r} already exists") from e

    def create_dashboard(
        self,
        key: str,
        name: str,
        definition: Dict[str, Any],
        owner_user_id: str = SYSTEM_OWNER_ID,
        description: Optional[str] = None,
        visibility: str = "private",
        scope: Optional[DashboardScope] = None,
        version: int = 0,
        is_system: bool = False,
    ) -> DashboardDefinition:
        key = str(key or "").strip()
        if not key:
            raise ValidationError("key is required")
        if not isinstance(definition, dict):
            raise ValidationError("definition must be an object")
        if self.catalog is not None and self.catalog.is_static_dashboard_key(key):
            raise DuplicateKey(f"Dashboard key {key!r} is reserved by a system dashboard")

        now = _now()
        values = {
            "id": str(uuid.uuid4()),
            "key": key,
            "owner_user_id": owner_user_id,
            "is_system": is_system,
            "name": name,
            "description": description,
            "visibility": "private" if visibility == "private" else "public",
            "scope": (scope or DashboardScope.global_()).to_dict(),
            "version": int(version),
            "definition": definition,
            "created_at": now,
            "updated_at": now,
        }
        self._bounded(self._insert_dashboard, values, label=f"dashboard create {key!r}")
        return self.find_by_key(key)

    def _delete_dashboard(self, key: str) -> int:
        with self.engine.begin() as conn:
            dash_id = conn.execute(select(d.id).where(d.key == key)).scalar()
            if dash_id is None:
                return 0
            conn.execute(delete(dashboard_definition_shares).where(s.dashboard_id == dash_id))
            return conn.execute(delete(dashboard_definitions).where(d.id == dash_id)).rowcount

    def delete_dashboard(self, key: str) -> int:
        """Delete a dashboard together with its shares."""
        return self._bounded(self._delete_dashboard, key, label=f"dashboard delete {key!r}")

    # ── Shares ───────────────────────────────────────────────────────

    def _share_tuple(self, dashboard_id: str, principal_type: str, principal_id: str):
        return and_(
            s.dashboard_id == dashboard_id,
            s.principal_type == principal_type,
            s.principal_id == principal_id,
        )

    def _fetch_shares(self, dashboard_id: str) -> List[DashboardShare]:
        stmt = (
            select(
                s.id, s.dashboard_id, s.principal_type, s.principal_id,
                func.coalesce(s.permission, "view").label("permission"),
                s.shared_by, s.shared_by_name, s.created_at,
            )
            .where(s.dashboard_id == dashboard_id)
            .order_by(s.created_at.asc(), s.id.asc())
        )
        with self.engine.connect() as conn:
            return [_row_to_share(r) for r in conn.execute(stmt).mappings()]

    def list_shares(self, dashboard_id: str) -> List[DashboardShare]:
        return self._bounded(self._fetch_shares, dashboard_id, label="share list")

    def _fetch_share(self, where):
        with self.engine.connect() as conn:
            return conn.execute(select(dashboard_definition_shares).where(where)).mappings().first()

    def get_share(self, dashboard_id: str, principal_type: str,
                  principal_id: str) -> Optional[DashboardShare]:
        where = self._share_tuple(dashboard_id, principal_type, principal_id)
        row = self._bounded(self._fetch_share, where, label="share lookup")
        return _row_to_share(row) if row else None

    def has_share(self, dashboard_id: str, principals: Iterable[Tuple[str, str]]) -> bool:
        """True when any of *principals* holds a share on the dashboard."""
        shared = _principal_clause(principals)
        if shared is None:
            return False
        try:
            row = self._bounded(self._fetch_share, and_(s.dashboard_id == dashboard_id, shared),
                                label="share match")
        except UpstreamUnavailable as e:
            logger.error("Share match on %s failed, treating as not shared: %s", dashboard_id, e)
            return False
        return row is not None

    def _write_share(self, where, changes: Dict[str, Any], new_row: Dict[str, Any]) -> None:
        try:
            with self.engine.begin() as conn:
                updated = conn.execute(
                    update(dashboard_definition_shares).where(where).values(**changes)
                ).rowcount
                if not updated:
                    conn.execute(insert(dashboard_definition_shares).values(**new_row, **changes))
        except IntegrityError:
            # lost a race with a concurrent insert of the same tuple
            with self.engine.begin() as conn:
                conn.execute(update(dashboard_definition_shares).where(where).values(**changes))

    def upsert_share(
        self,
        dashboard_id: str,
        principal_type: str,
        principal_id: str,
        permission: str,
        shared_by: str,
        shared_by_name: Optional[str],
    ) -> DashboardShare:
        """Insert a grant, or update permission/audit fields of the existing one."""
        changes = {
            "permission": permission,
            "shared_by": shared_by,
            "shared_by_name": shared_by_name,
        }
        new_row = {
            "id": str(uuid.uuid4()),
            "dashboard_id": dashboard_id,
            "principal_type": principal_type,
            "principal_id": principal_id,
            "created_at": _now(),
        }
        where = self._share_tuple(dashboard_id, principal_type, principal_id)
        self._bounded(self._write_share, where, changes, new_row, label="share upsert")
        return self.get_share(dashboard_id, principal_type, principal_id)

    def _delete_share(self, where) -> int:
        with self.engine.begin() as conn:
            return conn.execute(delete(dashboard_definition_shares).where(where)).rowcount

    def delete_share(self, dashboard_id: str, principal_type: str, principal_id: str) -> int:
        where = self._share_tuple(dashboard_id, principal_type, principal_id)
        return self._bounded(self._delete_share, where, label="share delete")
