"""
Performance Rating Aggregator.

overall_rating of one evaluation = mean of the sub-scores that are present and > 0,
rounded half-up to 2 places (0.00 when none qualify). A 0 sub-score means
"not rated", the same as an absent one.

Every change re-runs the contractor rating path. Create/update also copy the
overall rating into the linked ContractHistory row and refresh the history path.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from ..audit import log_action, serialize_model
from ..db_utils import atomic, fail_closed
from ..errors import NotFound, ValidationFailure
from ..extensions import db
from ..models import RATING_FIELDS, ContractHistory, Contractor, PerformanceRating, _rating, _to_decimal
from ..utils import coerce_fields, require
from .contractors import ZERO_RATING, check_rating_range, refresh_contractor_stats, update_contractor_overall_rating

logger = logging.getLogger(__name__)

CREATE_FIELDS = {
    "contractor_id": "int",
    "contract_history_id": "int",
    "project_id": "int",
    "evaluation_period": "str",
    "quality_rating": "decimal",
    "timeliness_rating": "decimal",
    "safety_rating": "decimal",
    "resource_rating": "decimal",
    "communication_rating": "decimal",
    "evaluator_name": "str",
    "evaluator_position": "str",
    "evaluation_date": "date",
    "strengths": "str",
    "areas_for_improvement": "str",
    "comments": "str",
}

# the contractor / contract links are fixed once the evaluation exists
UPDATE_FIELDS = {
    key: kind for key, kind in CREATE_FIELDS.items() if key not in ("contractor_id", "contract_history_id")
}


def compute_overall_rating(scores: Mapping[str, Any]) -> Decimal:
    """
    >>> compute_overall_rating({"quality_rating": 4, "safety_rating": 5, "resource_rating": 0})
    Decimal('4.50')
    """
    present = [_to_decimal(value) for value in scores.values() if value is not None]
    rated = [value for value in present if value > 0]
    if not rated:
        return ZERO_RATING
    return _rating(sum(rated, Decimal("0")) / Decimal(len(rated)))


def _normalize_scores(values: Dict[str, Any]) -> None:
    for field in RATING_FIELDS:
        if values.get(field) is not None:
            check_rating_range(values[field], field)
            values[field] = _rating(values[field])


def _push_to_history(rating: PerformanceRating) -> None:
    """Write the evaluation's overall rating onto its contract and refresh the history path."""
    history = db.session.get(ContractHistory, rating.contract_history_id) if rating.contract_history_id else None
    if history is None:
        return
    before = serialize_model(history)
    history.performance_rating = rating.overall_rating
    db.session.flush()
    log_action(history, "UPDATE", before=before, after=serialize_model(history))
    refresh_contractor_stats(history.contractor_id)


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
def create_performance_rating(data: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(data, CREATE_FIELDS)
    require(values, "contractor_id")
    _normalize_scores(values)

    with atomic():
        contractor_id = values["contractor_id"]
        if db.session.get(Contractor, contractor_id) is None:
            raise ValidationFailure(f"contractor {contractor_id} does not exist")

        history_id = values.get("contract_history_id")
        if history_id is not None:
            history = db.session.get(ContractHistory, history_id)
            if history is None:
                logger.debug("Rating contract history %s not found, left unlinked", history_id)
                values["contract_history_id"] = None
            elif history.contractor_id != contractor_id:
                raise ValidationFailure(
                    f"contract history {history_id} belongs to contractor {history.contractor_id}, not {contractor_id}"
                )

        rating = PerformanceRating(**values)
        rating.overall_rating = compute_overall_rating(rating.sub_scores())
        db.session.add(rating)
        db.session.flush()

        log_action(rating, "CREATE", after=serialize_model(rating))
        update_contractor_overall_rating(contractor_id)
        _push_to_history(rating)
        rating_id = rating.id

    logger.info("Performance rating %s for contractor %s: %s", rating_id, contractor_id, rating.overall_rating)
    return {"id": rating_id}


def update_performance_rating(rating_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Sub-scores omitted from `patch` keep their stored value; an explicit null clears one."""
    values = coerce_fields(patch, UPDATE_FIELDS)
    _normalize_scores(values)

    with atomic():
        rating = db.session.get(PerformanceRating, rating_id)
        if rating is None:
            raise NotFound("PerformanceRating", rating_id)

        before = serialize_model(rating)
        for key, value in values.items():
            setattr(rating, key, value)
        rating.overall_rating = compute_overall_rating(rating.sub_scores())
        db.session.flush()
        log_action(rating, "UPDATE", before=before, after=serialize_model(rating))

        update_contractor_overall_rating(rating.contractor_id)
        _push_to_history(rating)

    return {"success": True}


def delete_performance_rating(rating_id: int) -> Dict[str, Any]:
    """The linked contract keeps the performance_rating it was last given."""
    with atomic():
        rating = db.session.get(PerformanceRating, rating_id)
        if rating is None:
            raise NotFound("PerformanceRating", rating_id)

        contractor_id = rating.contractor_id
        log_action(rating, "DELETE", before=serialize_model(rating))
        db.session.delete(rating)
        db.session.flush()

        update_contractor_overall_rating(contractor_id)

    return {"success": True}


@fail_closed
def get_performance_rating(rating_id: int) -> Optional[PerformanceRating]:
    return db.session.get(PerformanceRating, rating_id)
