"""
Scope-mode resolution.

For a (verb, entity) pair the resolver probes, in order:

  1. ``dashboard-core.{entity}.{verb}.scope.{mode}`` (entity override)
  2. ``dashboard-core.{verb}.scope.{mode}`` (pack-wide default)

with modes tried in restrictiveness order ``none, own, ldd, all``. The first
granted key wins, so the most restrictive grant under the most specific prefix
decides. When nothing is granted the caller gets ``own``.

A probe that errors or times out counts as not granted and is recorded on
the resolution so callers can report the degraded state.
"""

import logging
from typing import Optional, Union

from dashboard_core.authz import (
    AuthorizationProvider,
    coerce_entity,
    coerce_verb,
    scope_action_key,
)
from dashboard_core.config import UPSTREAM_TIMEOUT_SECONDS
from dashboard_core.errors import UpstreamUnavailable
from dashboard_core.models import (
    CheckResult,
    ScopeEntity,
    ScopeMode,
    ScopeResolution,
    ScopeVerb,
)
from dashboard_core.upstream import bounded_call

logger = logging.getLogger(__name__)

MODE_ORDER = (ScopeMode.NONE, ScopeMode.OWN, ScopeMode.LDD, ScopeMode.ALL)
DEFAULT_MODE = ScopeMode.OWN


class ScopeResolver:
    """Resolve effective scope modes against an AuthorizationProvider."""

    def __init__(self, provider: AuthorizationProvider,
                 timeout: Optional[float] = UPSTREAM_TIMEOUT_SECONDS):
        self.provider = provider
        self.timeout = timeout

    def check(self, action_key: str) -> CheckResult:
        """Probe one action key; failures are folded into a denied result."""
        try:
            result = bounded_call(
                self.provider.check, action_key,
                timeout=self.timeout, label=f"authz check {action_key}",
            )
        except UpstreamUnavailable:
            return CheckResult(granted=False, source="unavailable", unavailable=True)
        if isinstance(result, CheckResult):
            return result
        if isinstance(result, bool):
            return CheckResult(granted=result)
        logger.warning("authz check %s returned unexpected %s", action_key, type(result).__name__)
        return CheckResult(granted=False, source="unavailable", unavailable=True)

    def resolve_detailed(self, verb: Union[str, ScopeVerb],
                         entity: Union[str, ScopeEntity, None] = None) -> ScopeResolution:
        verb = coerce_verb(verb)
        entity = coerce_entity(entity)
        unavailable = []

        passes = [("entity", entity)] if entity is not None else []
        passes.append(("global", None))

        for source, pass_entity in passes:
            for mode in MODE_ORDER:
                key = scope_action_key(verb, mode, pass_entity)
                result = self.check(key)
                if result.unavailable:
                    unavailable.append(key)
                    continue
                if result.granted:
                    return ScopeResolution(mode=mode, source=source, action_key=key,
                                           unavailable_keys=unavailable)

        if unavailable:
            logger.warning("Scope for %s/%s fell back to default with %d unavailable probes",
                           verb.value, entity.value if entity else "-", len(unavailable))
        return ScopeResolution(mode=DEFAULT_MODE, source="default", unavailable_keys=unavailable)

    def resolve(self, verb: Union[str, ScopeVerb],
                entity: Union[str, ScopeEntity, None] = None) -> ScopeMode:
        return self.resolve_detailed(verb, entity).mode


def resolve_scope_mode(provider: AuthorizationProvider, verb: Union[str, ScopeVerb],
                       entity: Union[str, ScopeEntity, None] = None) -> ScopeMode:
    """Convenience wrapper around ScopeResolver.resolve."""
    return ScopeResolver(provider).resolve(verb, entity)
