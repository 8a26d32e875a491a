"""
Web module - Flask HTTP adapter for the LatticeShield service.
"""

from latticeshield.web.app import create_app, main

__all__ = ["create_app", "main"]
