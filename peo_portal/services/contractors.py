"""
Contractor Aggregate Engine.

A contractor's aggregate fields are DERIVED, never set by clients, and always
recomputed from scratch (no increments) inside the transaction of the write
that changed the underlying rows.

History path (refresh_contractor_stats), run on every ContractHistory change:
    total_contracts, total_contract_value, completed_contracts, ongoing_contracts,
    history_rating = avg(contract_history.performance_rating), nulls excluded

Rating path (update_contractor_overall_rating), run on every PerformanceRating change:
    evaluation_rating = avg(performance_ratings.overall_rating)

overall_rating (both paths, same rule):
    evaluation_rating if the contractor has any PerformanceRating, else history_rating
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..audit import log_action, serialize_model
from ..db_utils import atomic, fail_closed
from ..errors import NotFound, ValidationFailure
from ..extensions import db
from ..models import (
    CONTRACT_COMPLETED,
    CONTRACT_ONGOING,
    CONTRACT_STATUSES,
    CONTRACTOR_STATUSES,
    ContractHistory,
    Contractor,
    PerformanceRating,
    _money,
    _rating,
    _to_decimal,
)
from ..utils import coerce_fields, parse_text, require, require_choice, require_non_negative

logger = logging.getLogger(__name__)

ZERO_RATING = Decimal("0.00")

CONTRACTOR_FIELDS = {
    "name": "str",
    "trade_name": "str",
    "tin": "str",
    "philgeps_number": "str",
    "pcab_license": "str",
    "pcab_category": "str",
    "pcab_classification": "str",
    "license_expiry_date": "date",
    "address": "str",
    "city": "str",
    "province": "str",
    "contact_person": "str",
    "email": "str",
    "phone": "str",
    "mobile": "str",
    "status": "str",
    "blacklist_reason": "str",
    "blacklist_date": "date",
    "remarks": "str",
}

HISTORY_CREATE_FIELDS = {
    "contractor_id": "int",
    "project_id": "int",
    "bidding_id": "int",
    "contract_number": "str",
    "project_title": "str",
    "client_name": "str",
    "contract_amount": "money",
    "start_date": "date",
    "original_completion_date": "date",
    "actual_completion_date": "date",
    "status": "str",
    "remarks": "str",
}

# contractor_id is fixed once the row exists
HISTORY_UPDATE_FIELDS = {
    "contract_number": "str",
    "project_title": "str",
    "client_name": "str",
    "contract_amount": "money",
    "start_date": "date",
    "original_completion_date": "date",
    "actual_completion_date": "date",
    "status": "str",
    "time_extensions": "int",
    "extension_days": "int",
    "variation_orders": "int",
    "variation_amount": "money",
    "final_amount": "money",
    "liquidated_damages": "money",
    "performance_rating": "decimal",
    "remarks": "str",
}

_HISTORY_MONEY = ("contract_amount", "variation_amount", "final_amount", "liquidated_damages")
_HISTORY_COUNTERS = ("time_extensions", "extension_days", "variation_orders")


def check_rating_range(value: Optional[Decimal], field: str) -> None:
    if value is not None and not (Decimal("0") <= value <= Decimal("5")):
        raise ValidationFailure(f"{field} must be between 0 and 5")


def _average(total, count) -> Decimal:
    if not count:
        return ZERO_RATING
    return _rating(_to_decimal(total) / Decimal(count))


# ---------------------------------------------------------------------
# Aggregate recompute (no commit)
# ---------------------------------------------------------------------
def _evaluation_count(contractor_id: int) -> int:
    return (
        db.session.query(func.count(PerformanceRating.id))
        .filter(PerformanceRating.contractor_id == contractor_id)
        .scalar()
        or 0
    )


def _resolve_overall(contractor: Contractor, evaluation_count: int) -> None:
    contractor.overall_rating = contractor.evaluation_rating if evaluation_count else contractor.history_rating


def refresh_contractor_stats(contractor_id: Optional[int]) -> Optional[Contractor]:
    """History path: recompute counts, contract value and history_rating."""
    contractor = db.session.get(Contractor, contractor_id) if contractor_id is not None else None
    if contractor is None:
        logger.debug("refresh_contractor_stats: contractor %s not found, skipped", contractor_id)
        return None

    db.session.flush()
    total, value, completed, ongoing, rating_sum, rating_count = (
        db.session.query(
            func.count(ContractHistory.id),
            func.coalesce(func.sum(ContractHistory.contract_amount), 0),
            func.coalesce(func.sum(case((ContractHistory.status == CONTRACT_COMPLETED, 1), else_=0)), 0),
            func.coalesce(func.sum(case((ContractHistory.status == CONTRACT_ONGOING, 1), else_=0)), 0),
            func.sum(ContractHistory.performance_rating),
            func.count(ContractHistory.performance_rating),
        )
        .filter(ContractHistory.contractor_id == contractor_id)
        .one()
    )

    contractor.total_contracts = int(total or 0)
    contractor.total_contract_value = _money(_to_decimal(value))
    contractor.completed_contracts = int(completed or 0)
    contractor.ongoing_contracts = int(ongoing or 0)
    contractor.history_rating = _average(rating_sum, rating_count)
    _resolve_overall(contractor, _evaluation_count(contractor_id))

    logger.info(
        "Contractor %s stats: contracts=%s value=%s overall=%s",
        contractor_id,
        contractor.total_contracts,
        contractor.total_contract_value,
        contractor.overall_rating,
    )
    return contractor


def update_contractor_overall_rating(contractor_id: Optional[int]) -> Optional[Contractor]:
    """Rating path: recompute evaluation_rating from all PerformanceRating rows."""
    contractor = db.session.get(Contractor, contractor_id) if contractor_id is not None else None
    if contractor is None:
        logger.debug("update_contractor_overall_rating: contractor %s not found, skipped", contractor_id)
        return None

    db.session.flush()
    rating_sum, rating_count = (
        db.session.query(func.sum(PerformanceRating.overall_rating), func.count(PerformanceRating.id))
        .filter(PerformanceRating.contractor_id == contractor_id)
        .one()
    )

    contractor.evaluation_rating = _average(rating_sum, rating_count)
    _resolve_overall(contractor, rating_count)

    logger.info("Contractor %s overall rating -> %s", contractor_id, contractor.overall_rating)
    return contractor


def recompute_all_contractors() -> int:
    """Rebuild every contractor's aggregates from its rows. Returns the number refreshed."""
    with atomic():
        ids = [row[0] for row in db.session.query(Contractor.id).order_by(Contractor.id).all()]
        for contractor_id in ids:
            refresh_contractor_stats(contractor_id)
            update_contractor_overall_rating(contractor_id)

    logger.info("Recomputed aggregates for %d contractor(s)", len(ids))
    return len(ids)


# ---------------------------------------------------------------------
# Contractor master data
# ---------------------------------------------------------------------
def _reject_aggregates(data: Dict[str, Any]) -> None:
    derived = sorted(set(data) & set(Contractor.AGGREGATE_FIELDS))
    if derived:
        raise ValidationFailure(f"derived field(s) cannot be set: {', '.join(derived)}")


def _check_tin_free(tin: Optional[str], contractor_id: Optional[int] = None) -> None:
    if not tin:
        return
    existing = Contractor.query.filter_by(tin=tin).first()
    if existing is not None and existing.id != contractor_id:
        raise ValidationFailure(f"a contractor with TIN {tin} already exists")


# SQLite: "UNIQUE constraint failed: contractors.tin"; PostgreSQL: "Key (tin)=(...) already exists"
_TIN_CONSTRAINT_RE = re.compile(r"\btin\b", re.IGNORECASE)


def _flush_unique_tin(tin: Optional[str]) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        if tin and _TIN_CONSTRAINT_RE.search(str(exc.orig)):
            raise ValidationFailure(f"a contractor with TIN {tin} already exists") from exc
        raise


def create_contractor(data: Dict[str, Any]) -> Dict[str, Any]:
    _reject_aggregates(data)
    values = coerce_fields(data, CONTRACTOR_FIELDS)
    require(values, "name")
    require_choice(values.get("status"), CONTRACTOR_STATUSES, "status")

    with atomic():
        _check_tin_free(values.get("tin"))
        contractor = Contractor(**values)
        if not contractor.status:
            contractor.status = "Active"
        db.session.add(contractor)
        _flush_unique_tin(values.get("tin"))

        log_action(contractor, "CREATE", after=serialize_model(contractor))
        contractor_id = contractor.id

    logger.info("Contractor %s created (%s)", contractor_id, values["name"])
    return {"id": contractor_id}


def update_contractor(contractor_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
    _reject_aggregates(patch)
    values = coerce_fields(patch, CONTRACTOR_FIELDS)
    if "name" in values:
        require(values, "name")
    if "status" in values:
        require(values, "status")
        require_choice(values["status"], CONTRACTOR_STATUSES, "status")

    with atomic():
        contractor = db.session.get(Contractor, contractor_id)
        if contractor is None:
            raise NotFound("Contractor", contractor_id)
        if "tin" in values:
            _check_tin_free(values["tin"], contractor_id)

        before = serialize_model(contractor)
        for key, value in values.items():
            setattr(contractor, key, value)
        _flush_unique_tin(values.get("tin"))
        log_action(contractor, "UPDATE", before=before, after=serialize_model(contractor))

    return {"success": True}


def delete_contractor(contractor_id: int) -> Dict[str, Any]:
    """Deletes the contractor together with its contract history and ratings."""
    with atomic():
        contractor = db.session.get(Contractor, contractor_id)
        if contractor is None:
            raise NotFound("Contractor", contractor_id)

        log_action(contractor, "DELETE", before=serialize_model(contractor))
        db.session.delete(contractor)

    logger.info("Contractor %s deleted", contractor_id)
    return {"success": True}


@fail_closed
def get_contractor(contractor_id: int) -> Optional[Contractor]:
    return db.session.get(Contractor, contractor_id)


@fail_closed
def get_contractor_by_tin(tin: str) -> Optional[Contractor]:
    tin = parse_text(tin, "tin")
    if tin is None:
        return None
    return Contractor.query.filter_by(tin=tin).first()


def _count_status(status: str):
    return func.coalesce(func.sum(case((Contractor.status == status, 1), else_=0)), 0)


@fail_closed
def contractor_stats() -> Dict[str, Any]:
    total, active, blacklisted, suspended, inactive, value, rating_sum = db.session.query(
        func.count(Contractor.id),
        _count_status("Active"),
        _count_status("Blacklisted"),
        _count_status("Suspended"),
        _count_status("Inactive"),
        func.coalesce(func.sum(Contractor.total_contract_value), 0),
        func.coalesce(func.sum(Contractor.overall_rating), 0),
    ).one()

    return {
        "total": int(total or 0),
        "active": int(active),
        "blacklisted": int(blacklisted),
        "suspended": int(suspended),
        "inactive": int(inactive),
        "total_contract_value": _money(_to_decimal(value)),
        "avg_rating": _average(rating_sum, total),
    }


# ---------------------------------------------------------------------
# Contract history
# ---------------------------------------------------------------------
def _validate_history(values: Dict[str, Any]) -> None:
    if "status" in values:
        require(values, "status")
        require_choice(values["status"], CONTRACT_STATUSES, "status")
    for key in _HISTORY_MONEY:
        if values.get(key) is not None:
            require_non_negative(values[key], key)
            values[key] = _money(values[key])
    for key in _HISTORY_COUNTERS:
        if key in values and values[key] is None:
            values[key] = 0
    if values.get("performance_rating") is not None:
        check_rating_range(values["performance_rating"], "performance_rating")
        values["performance_rating"] = _rating(values["performance_rating"])


def create_contract_history(data: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(data, HISTORY_CREATE_FIELDS)
    require(values, "contractor_id")
    _validate_history(values)

    with atomic():
        if db.session.get(Contractor, values["contractor_id"]) is None:
            raise ValidationFailure(f"contractor {values['contractor_id']} does not exist")

        history = ContractHistory(**values)
        if not history.status:
            history.status = CONTRACT_ONGOING
        if not history.client_name:
            history.client_name = current_app.config["DEFAULT_CLIENT_NAME"]
        db.session.add(history)
        db.session.flush()

        log_action(history, "CREATE", after=serialize_model(history))
        refresh_contractor_stats(history.contractor_id)
        history_id = history.id

    return {"id": history_id}


def update_contract_history(history_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(patch, HISTORY_UPDATE_FIELDS)
    _validate_history(values)

    with atomic():
        history = db.session.get(ContractHistory, history_id)
        if history is None:
            raise NotFound("ContractHistory", history_id)

        before = serialize_model(history)
        for key, value in values.items():
            setattr(history, key, value)
        db.session.flush()
        log_action(history, "UPDATE", before=before, after=serialize_model(history))

        refresh_contractor_stats(history.contractor_id)

    return {"success": True}


def delete_contract_history(history_id: int) -> Dict[str, Any]:
    with atomic():
        history = db.session.get(ContractHistory, history_id)
        if history is None:
            raise NotFound("ContractHistory", history_id)

        contractor_id = history.contractor_id
        log_action(history, "DELETE", before=serialize_model(history))
        db.session.delete(history)
        db.session.flush()

        refresh_contractor_stats(contractor_id)

    return {"success": True}


@fail_closed
def get_contract_history(history_id: int) -> Optional[ContractHistory]:
    return db.session.get(ContractHistory, history_id)
