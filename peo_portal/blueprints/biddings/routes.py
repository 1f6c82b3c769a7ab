"""
peo_portal/blueprints/biddings/routes.py

Bidding endpoints. Setting status "Awarded" also awards the linked POW.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...services import biddings
from ...utils import model_to_dict, snake_keys, to_api

biddings_bp = Blueprint("biddings", __name__, url_prefix="/api/biddings")


@biddings_bp.route("/stats", methods=["GET"])
def bidding_stats():
    return jsonify(to_api(biddings.bidding_stats()))


@biddings_bp.route("/<int:bidding_id>", methods=["GET"])
def get_bidding(bidding_id: int):
    return jsonify(to_api(model_to_dict(biddings.get_bidding(bidding_id))))


@biddings_bp.route("", methods=["POST"])
def create_bidding():
    result = biddings.create_bidding(snake_keys(request.get_json(silent=True)))
    return jsonify(to_api(result)), 201


@biddings_bp.route("/<int:bidding_id>", methods=["PATCH"])
def update_bidding(bidding_id: int):
    return jsonify(to_api(biddings.update_bidding(bidding_id, snake_keys(request.get_json(silent=True)))))


@biddings_bp.route("/<int:bidding_id>", methods=["DELETE"])
def delete_bidding(bidding_id: int):
    return jsonify(to_api(biddings.delete_bidding(bidding_id)))
