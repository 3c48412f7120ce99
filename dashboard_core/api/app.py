"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from dashboard_core.catalog import CatalogResolver
from dashboard_core.config import TEMPLATE_REGISTRY_PATH, configure_logging
from dashboard_core.database import create_schema, init_engine
from dashboard_core.api.routes import register_routes


def create_app(engine=None, catalog=None, provider_factory=None, org_scope=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()
        create_schema(engine)

        if catalog is None:
            print(f"[init] Loading dashboard templates from {TEMPLATE_REGISTRY_PATH}...")
            catalog = CatalogResolver()
        print(f"[init] {len(catalog.get_static_dashboards())} system dashboards available")

        print("[init] ✓ API server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, engine, catalog, provider_factory=provider_factory, org_scope=org_scope)

    return app


def main():
    """Run the development server."""
    configure_logging()
    print("=" * 60)
    print("Dashboard Core – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print("\nAPI Endpoints:")
    print(f"  - GET    http://{host}:{port}/api/dashboard-core/scope")
    print(f"  - GET    http://{host}:{port}/api/dashboard-definitions")
    print(f"  - GET    http://{host}:{port}/api/dashboard-definitions/static")
    print(f"  - GET    http://{host}:{port}/api/dashboard-definitions/<key>")
    print(f"  - GET    http://{host}:{port}/api/dashboard-definitions/<key>/shares")
    print(f"  - POST   http://{host}:{port}/api/dashboard-definitions/<key>/shares")
    print(f"  - DELETE http://{host}:{port}/api/dashboard-definitions/<key>/shares")
    print(f"  - POST   http://{host}:{port}/api/report-blocks/pie/normalize")
    print(f"  - GET    http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
