"""
peo_portal/blueprints/pow/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose pow_bp for app factory registration.
"""

from __future__ import annotations

from .routes import pow_bp  # noqa: F401
