"""
peo_portal/blueprints/budgets/routes.py

Annual budget endpoints.

allocated_amount / remaining_amount are read-only here: they move only when
POWs are created, re-costed or deleted.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...services import budget_ledger
from ...utils import model_to_dict, snake_keys, to_api

budgets_bp = Blueprint("budgets", __name__, url_prefix="/api/budgets")


def _budget_json(budget):
    data = model_to_dict(budget)
    if data is not None:
        data["is_over_allocated"] = budget.is_over_allocated
    return data


@budgets_bp.route("/stats", methods=["GET"])
def budget_stats():
    stats = budget_ledger.budget_stats()
    stats["current_budget"] = _budget_json(stats["current_budget"])
    return jsonify(to_api(stats))


@budgets_bp.route("/<int:budget_id>", methods=["GET"])
def get_budget(budget_id: int):
    return jsonify(to_api(_budget_json(budget_ledger.get_budget(budget_id))))


@budgets_bp.route("/year/<int:fiscal_year>", methods=["GET"])
def get_budget_by_year(fiscal_year: int):
    return jsonify(to_api(_budget_json(budget_ledger.get_budget_by_year(fiscal_year))))


@budgets_bp.route("", methods=["POST"])
def create_budget():
    result = budget_ledger.create_budget(snake_keys(request.get_json(silent=True)))
    return jsonify(to_api(result)), 201


@budgets_bp.route("/<int:budget_id>", methods=["PATCH"])
def update_budget(budget_id: int):
    return jsonify(to_api(budget_ledger.update_budget(budget_id, snake_keys(request.get_json(silent=True)))))


@budgets_bp.route("/<int:budget_id>", methods=["DELETE"])
def delete_budget(budget_id: int):
    return jsonify(to_api(budget_ledger.delete_budget(budget_id)))
