"""
Flask route handlers for the REST API.
"""

import logging
import sys
import traceback
from functools import wraps

from flask import jsonify, request
from sqlalchemy import text as sa_text

from dashboard_core.access import DashboardReader
from dashboard_core.authz import SqlAuthorizationProvider
from dashboard_core.errors import NotFound, UpstreamUnavailable, ValidationError
from dashboard_core.models import DenyReason, ShareOutcome
from dashboard_core.org_scope import BoundedOrgScope, SqlOrgScopeResolver
from dashboard_core.report_blocks import normalize_pie_block
from dashboard_core.scope import ScopeResolver
from dashboard_core.shares import ShareManager
from dashboard_core.store import SqlDashboardStore
from dashboard_core.api.auth import identity_required

logger = logging.getLogger(__name__)


def _flag(value, default=True) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() not in {"0", "false", "no", "off"}


def _denied(outcome: ShareOutcome):
    denial = outcome.denial
    status = 503 if denial.reason is DenyReason.UPSTREAM_UNAVAILABLE else 403
    body = {"error": denial.message, "code": denial.reason.value}
    if denial.action_key:
        body["actionKey"] = denial.action_key
    return jsonify(body), status


def handle_errors(action: str):
    """Map the exception taxonomy onto HTTP responses."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFound as e:
                return jsonify({"error": str(e)}), 404
            except UpstreamUnavailable as e:
                logger.warning("Failed to %s: %s", action, e)
                return jsonify({"error": "Dashboard store unavailable", "code": "upstream_unavailable"}), 503
            except Exception as e:
                print(f"[ERROR] Failed to {action}: {e}", file=sys.stderr)
                traceback.print_exc()
                return jsonify({"error": f"Failed to {action}"}), 500
        return decorated
    return decorator


def register_routes(app, engine, catalog, provider_factory=None, org_scope=None):
    """Register all API routes on the Flask *app*."""

    store = SqlDashboardStore(engine, catalog=catalog)
    provider_factory = provider_factory or (lambda identity: SqlAuthorizationProvider(engine, identity))
    org_scope = BoundedOrgScope(org_scope or SqlOrgScopeResolver(engine))

    def scope_resolver() -> ScopeResolver:
        return ScopeResolver(provider_factory(request.identity))

    def share_manager() -> ShareManager:
        return ShareManager(store, scope_resolver(), org_scope)

    def dashboard_reader() -> DashboardReader:
        return DashboardReader(store, catalog, scope_resolver(), org_scope)

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Dashboard Core API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "scope": "/api/dashboard-core/scope",
                "dashboards": "/api/dashboard-definitions",
                "static": "/api/dashboard-definitions/static",
                "shares": "/api/dashboard-definitions/<key>/shares",
                "pie": "/api/report-blocks/pie/normalize",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False, "catalog": False}
        try:
            with engine.connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            logger.warning("Health check: database unreachable: %s", e)

        static_count = len(catalog.get_static_dashboards())
        checks["catalog"] = static_count > 0
        all_healthy = all(checks.values())

        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "static_dashboards": static_count,
        }), 200 if all_healthy else 503

    # ── Scope ────────────────────────────────────────────────────────

    @app.route("/api/dashboard-core/scope", methods=["GET"])
    @identity_required
    @handle_errors("resolve scope mode")
    def get_scope_mode():
        verb = request.args.get("verb", "read").strip()
        entity = request.args.get("entity", "").strip() or None
        resolution = scope_resolver().resolve_detailed(verb, entity)
        return jsonify({
            "verb": verb,
            "entity": entity,
            "mode": resolution.mode.value,
            "source": resolution.source,
            "actionKey": resolution.action_key,
            "degraded": resolution.degraded,
        }), 200

    # ── Dashboard definitions ────────────────────────────────────────

    @app.route("/api/dashboard-definitions", methods=["GET"])
    @identity_required
    @handle_errors("list dashboards")
    def list_dashboards():
        outcome = dashboard_reader().list_dashboards(
            request.identity,
            request.args.get("pack", ""),
            _flag(request.args.get("includeGlobal")),
        )
        if not outcome.ok:
            return _denied(outcome)
        return jsonify({"data": [d.to_dict() for d in outcome.data]}), 200

    @app.route("/api/dashboard-definitions/static", methods=["GET"])
    @identity_required
    @handle_errors("list static dashboards")
    def list_static_dashboards():
        dashboards = catalog.get_static_dashboards_for_pack(
            request.args.get("pack", ""), _flag(request.args.get("includeGlobal"))
        )
        return jsonify({"data": [d.to_dict() for d in dashboards]}), 200

    @app.route("/api/dashboard-definitions/<path:key>/shares", methods=["GET"])
    @identity_required
    @handle_errors("list shares")
    def list_shares(key):
        outcome = share_manager().list_shares(key, request.identity)
        if not outcome.ok:
            return _denied(outcome)
        return jsonify({"data": [s.to_dict() for s in outcome.data]}), 200

    @app.route("/api/dashboard-definitions/<path:key>/shares", methods=["POST"])
    @identity_required
    @handle_errors("add share")
    def add_share(key):
        body = request.get_json(silent=True)
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ValidationError("body must be an object")
        outcome = share_manager().add_share(
            key,
            request.identity,
            body.get("principalType"),
            body.get("principalId"),
            body.get("permission"),
        )
        if not outcome.ok:
            return _denied(outcome)
        return jsonify({"data": outcome.data.to_dict()}), 200

    @app.route("/api/dashboard-definitions/<path:key>/shares", methods=["DELETE"])
    @identity_required
    @handle_errors("remove share")
    def remove_share(key):
        outcome = share_manager().remove_share(
            key,
            request.identity,
            request.args.get("principalType"),
            request.args.get("principalId"),
        )
        if not outcome.ok:
            return _denied(outcome)
        return jsonify({"success": True}), 200

    @app.route("/api/dashboard-definitions/<path:key>", methods=["GET"])
    @identity_required
    @handle_errors("load dashboard")
    def get_dashboard(key):
        outcome = dashboard_reader().get_dashboard(key, request.identity)
        if not outcome.ok:
            return _denied(outcome)
        return jsonify({"data": outcome.data.to_dict()}), 200

    # ── Report blocks ────────────────────────────────────────────────

    @app.route("/api/report-blocks/pie/normalize", methods=["POST"])
    @identity_required
    @handle_errors("normalize pie block")
    def normalize_pie():
        block = normalize_pie_block(request.get_json(silent=True) or {})
        return jsonify({"data": block.to_dict()}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
