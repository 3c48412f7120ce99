"""
Interactive CLI for inspecting dashboard-core access and the system catalog.
Resolves scope modes for a caller against the grants stored in the database.
"""

from dashboard_core.authz import SqlAuthorizationProvider
from dashboard_core.catalog import CatalogResolver
from dashboard_core.config import configure_logging
from dashboard_core.database import create_schema, init_engine
from dashboard_core.models import Identity, ScopeEntity, ScopeVerb
from dashboard_core.scope import ScopeResolver


def _ask(prompt: str):
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return None


def print_scope_modes(resolver: ScopeResolver) -> None:
    print("\n── Scope modes ─────────────────────────────────────────────")
    for verb in ScopeVerb:
        for entity in (None, ScopeEntity.DASHBOARDS):
            res = resolver.resolve_detailed(verb, entity)
            label = f"{verb.value}/{entity.value if entity else '*'}"
            flag = "  (degraded)" if res.degraded else ""
            print(f"  {label:<20} {res.mode.value:<5} via {res.action_key or 'default'}{flag}")


def print_catalog(catalog: CatalogResolver, pack: str) -> None:
    dashboards = catalog.get_static_dashboards_for_pack(pack)
    print(f"\n── System dashboards ({len(dashboards)}) ─────────────────────────")
    for dash in dashboards:
        scope = dash.scope.pack if dash.scope.kind == "pack" else "global"
        print(f"  {dash.key:<40} v{dash.version:<3} {scope:<12} {dash.name}")


def main():
    configure_logging("WARNING")
    print("=== Dashboard Core: access & catalog inspector ===\n")

    engine = init_engine()
    create_schema(engine)
    catalog = CatalogResolver()

    subject_id = _ask("Subject id (or 'quit'): ")
    if not subject_id or subject_id.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return
    roles = _ask("Roles (comma-separated, optional): ")
    if roles is None:
        return

    identity = Identity(
        subject_id=subject_id,
        roles=[r.strip() for r in roles.split(",") if r.strip()],
    )
    print_scope_modes(ScopeResolver(SqlAuthorizationProvider(engine, identity)))

    while True:
        pack = _ask("\nPack to list (blank for all, 'quit' to exit): ")
        if pack is None or pack.lower() in {"quit", "exit"}:
            print("Goodbye.")
            return
        print_catalog(catalog, pack)


if __name__ == "__main__":
    main()
