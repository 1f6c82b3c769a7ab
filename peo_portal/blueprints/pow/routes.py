"""
peo_portal/blueprints/pow/routes.py

Program of Work endpoints.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...services import pows
from ...utils import model_to_dict, snake_keys, to_api

pow_bp = Blueprint("pow", __name__, url_prefix="/api/pow")


@pow_bp.route("/stats", methods=["GET"])
def pow_stats():
    return jsonify(to_api(pows.pow_stats(request.args.get("fiscalYear"))))


@pow_bp.route("/<int:pow_id>", methods=["GET"])
def get_pow(pow_id: int):
    return jsonify(to_api(model_to_dict(pows.get_pow(pow_id))))


@pow_bp.route("", methods=["POST"])
def create_pow():
    result = pows.create_pow(snake_keys(request.get_json(silent=True)))
    return jsonify(to_api(result)), 201


@pow_bp.route("/<int:pow_id>", methods=["PATCH"])
def update_pow(pow_id: int):
    return jsonify(to_api(pows.update_pow(pow_id, snake_keys(request.get_json(silent=True)))))


@pow_bp.route("/<int:pow_id>", methods=["DELETE"])
def delete_pow(pow_id: int):
    return jsonify(to_api(pows.delete_pow(pow_id)))
