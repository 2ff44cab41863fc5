"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError

from telehealth.config import TOKEN_EXPIRY_HOURS, configure_logging
from telehealth.database import create_schema, init_engine
from telehealth.api.routes import register_routes


def create_app(engine=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if engine is None:
        try:
            print("[init] Initializing database connection...")
            engine = init_engine()

            print("[init] Creating missing tables...")
            create_schema(engine)

            print("[init] ✓ API server ready")
        except SQLAlchemyError as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, engine)

    return app


def main():
    """Run the development server."""
    configure_logging()

    print("=" * 60)
    print("Telehealth Consultation API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Token lifetime: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - GET  http://{host}:{port}/api/me")
    print(f"  - GET  http://{host}:{port}/api/dashboard")
    print(f"  - GET  http://{host}:{port}/api/doctors")
    print(f"  - GET  http://{host}:{port}/api/consultations")
    print(f"  - GET  http://{host}:{port}/api/consultations/<id>/messages")
    print(f"  - GET  http://{host}:{port}/api/records")
    print(f"  - GET  http://{host}:{port}/api/doctor/earnings")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
