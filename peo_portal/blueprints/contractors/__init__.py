"""
peo_portal/blueprints/contractors/__init__.py

Blueprint package export: contractors, their contract history and performance ratings.
"""

from __future__ import annotations

from .routes import contract_history_bp, contractors_bp, ratings_bp  # noqa: F401
