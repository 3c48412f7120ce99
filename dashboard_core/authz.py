"""
Action keys and the authorization provider.

Permissions are flat, dotted action-key strings granted to a caller. The
typed helpers below are the only place those strings are assembled.
"""

import logging
from typing import Optional, Protocol, Union

from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Engine

from dashboard_core.config import ACTION_NAMESPACE
from dashboard_core.database import action_grants
from dashboard_core.errors import ValidationError
from dashboard_core.models import (
    CheckResult,
    Identity,
    ScopeEntity,
    ScopeMode,
    ScopeVerb,
    ShareCategory,
)

logger = logging.getLogger(__name__)

SHARE_OUTSIDE_KEY = f"{ACTION_NAMESPACE}.{ScopeEntity.DASHBOARDS.value}.scope.share_outside"


class AuthorizationProvider(Protocol):
    """Answers whether the current caller holds an action key."""

    def check(self, action_key: str) -> CheckResult:
        ...


def coerce_verb(verb: Union[str, ScopeVerb]) -> ScopeVerb:
    try:
        return ScopeVerb(verb)
    except ValueError:
        raise ValidationError(f"verb must be read, write, or delete (got {verb!r})")


def coerce_entity(entity: Union[str, ScopeEntity, None]) -> Optional[ScopeEntity]:
    if entity is None or entity == "":
        return None
    try:
        return ScopeEntity(entity)
    except ValueError:
        raise ValidationError(f"Unsupported entity {entity!r}")


def scope_prefix(verb: ScopeVerb, entity: Optional[ScopeEntity] = None) -> str:
    if entity is None:
        return f"{ACTION_NAMESPACE}.{verb.value}.scope"
    return f"{ACTION_NAMESPACE}.{entity.value}.{verb.value}.scope"


def scope_action_key(verb: ScopeVerb, mode: ScopeMode,
                     entity: Optional[ScopeEntity] = None) -> str:
    """e.g. ``dashboard-core.dashboards.write.scope.own``"""
    return f"{scope_prefix(verb, entity)}.{mode.value}"


def share_action_key(category: ShareCategory) -> str:
    """e.g. ``dashboard-core.dashboards.share.ldd``"""
    return f"{ACTION_NAMESPACE}.{ScopeEntity.DASHBOARDS.value}.share.{category.value}"


class SqlAuthorizationProvider:
    """
    Looks up action grants for one caller in the ``action_grants`` table.

    A key is held when it is granted to the caller's subject id, to one of
    their roles (case-insensitive) or to one of their groups.
    """

    def __init__(self, engine: Engine, identity: Identity):
        self.engine = engine
        self.identity = identity

    def _principal_clause(self):
        c = action_grants.c
        clauses = [and_(c.principal_type == "user", c.principal_id == self.identity.subject_id)]
        roles = sorted({str(r).strip().lower() for r in self.identity.roles if str(r).strip()})
        if roles:
            clauses.append(and_(c.principal_type == "role", func.lower(c.principal_id).in_(roles)))
        groups = [str(g) for g in self.identity.groups if str(g).strip()]
        if groups:
            clauses.append(and_(c.principal_type == "group", c.principal_id.in_(groups)))
        return or_(*clauses)

    def check(self, action_key: str) -> CheckResult:
        c = action_grants.c
        stmt = (
            select(c.principal_type)
            .where(c.action_key == action_key, self._principal_clause())
            .limit(1)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return CheckResult(granted=False, source="sql")
        logger.debug("Granted %s to %s via %s", action_key, self.identity.subject_id, row[0])
        return CheckResult(granted=True, source=f"sql:{row[0]}")
