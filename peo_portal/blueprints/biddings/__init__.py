"""
peo_portal/blueprints/biddings/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose biddings_bp for app factory registration.
"""

from __future__ import annotations

from .routes import biddings_bp  # noqa: F401
