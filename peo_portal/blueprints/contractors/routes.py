"""
peo_portal/blueprints/contractors/routes.py

Contractor master data, contract history and performance ratings.

IMPORTANT:
- Aggregate fields (totalContracts ... overallRating) are returned but never accepted.
- Every history/rating write recomputes the owning contractor in the same transaction.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...services import contractors, ratings
from ...utils import model_to_dict, snake_keys, to_api

contractors_bp = Blueprint("contractors", __name__, url_prefix="/api/contractors")
contract_history_bp = Blueprint("contract_history", __name__, url_prefix="/api/contract-history")
ratings_bp = Blueprint("performance_ratings", __name__, url_prefix="/api/performance-ratings")


def _body() -> dict:
    return snake_keys(request.get_json(silent=True))


# ---------------------------------------------------------------------
# Contractors
# ---------------------------------------------------------------------
@contractors_bp.route("/stats", methods=["GET"])
def contractor_stats():
    return jsonify(to_api(contractors.contractor_stats()))


@contractors_bp.route("/<int:contractor_id>", methods=["GET"])
def get_contractor(contractor_id: int):
    return jsonify(to_api(model_to_dict(contractors.get_contractor(contractor_id))))


@contractors_bp.route("/tin/<tin>", methods=["GET"])
def get_contractor_by_tin(tin: str):
    return jsonify(to_api(model_to_dict(contractors.get_contractor_by_tin(tin))))


@contractors_bp.route("", methods=["POST"])
def create_contractor():
    return jsonify(to_api(contractors.create_contractor(_body()))), 201


@contractors_bp.route("/<int:contractor_id>", methods=["PATCH"])
def update_contractor(contractor_id: int):
    return jsonify(to_api(contractors.update_contractor(contractor_id, _body())))


@contractors_bp.route("/<int:contractor_id>", methods=["DELETE"])
def delete_contractor(contractor_id: int):
    return jsonify(to_api(contractors.delete_contractor(contractor_id)))


# ---------------------------------------------------------------------
# Contract history
# ---------------------------------------------------------------------
@contract_history_bp.route("/<int:history_id>", methods=["GET"])
def get_contract_history(history_id: int):
    return jsonify(to_api(model_to_dict(contractors.get_contract_history(history_id))))


@contract_history_bp.route("", methods=["POST"])
def create_contract_history():
    return jsonify(to_api(contractors.create_contract_history(_body()))), 201


@contract_history_bp.route("/<int:history_id>", methods=["PATCH"])
def update_contract_history(history_id: int):
    return jsonify(to_api(contractors.update_contract_history(history_id, _body())))


@contract_history_bp.route("/<int:history_id>", methods=["DELETE"])
def delete_contract_history(history_id: int):
    return jsonify(to_api(contractors.delete_contract_history(history_id)))


# ---------------------------------------------------------------------
# Performance ratings
# ---------------------------------------------------------------------
@ratings_bp.route("/<int:rating_id>", methods=["GET"])
def get_performance_rating(rating_id: int):
    return jsonify(to_api(model_to_dict(ratings.get_performance_rating(rating_id))))


@ratings_bp.route("", methods=["POST"])
def create_performance_rating():
    return jsonify(to_api(ratings.create_performance_rating(_body()))), 201


@ratings_bp.route("/<int:rating_id>", methods=["PATCH"])
def update_performance_rating(rating_id: int):
    return jsonify(to_api(ratings.update_performance_rating(rating_id, _body())))


@ratings_bp.route("/<int:rating_id>", methods=["DELETE"])
def delete_performance_rating(rating_id: int):
    return jsonify(to_api(ratings.delete_performance_rating(rating_id)))
