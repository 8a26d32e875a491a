"""
LatticeShield Web API
=====================
WSGI entry point for cloud deployment.

    gunicorn web.backend.app:application
"""

from latticeshield.web.app import create_app, main

app = create_app()

# ============================================================
# ENTRY POINT
# ============================================================

application = app

if __name__ == "__main__":
    main()
