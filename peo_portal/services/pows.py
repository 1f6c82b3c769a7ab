"""
POW (Program of Work) lifecycle.

Status vocabulary: Draft -> For Review -> Approved -> For Bidding -> Awarded
(Cancelled from anywhere). Clients may set any listed status; bidding-driven
transitions (For Bidding / Awarded / back to Approved) come from services/biddings.py
through the on_bidding_* hooks below.

Ledger coupling:
- create: allocate estimated_cost on the linked budget
- update: re-adjust the ledger when cost or budget changes (BUDGET_REALLOCATE_ON_UPDATE)
- delete: release the stored estimated_cost
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import case, func

from ..audit import log_action, serialize_model
from ..db_utils import atomic, fail_closed, retry_on_conflict
from ..errors import NotFound
from ..extensions import db
from ..models import (
    POW_APPROVED,
    POW_AWARDED,
    POW_CANCELLED,
    POW_DRAFT,
    POW_FOR_BIDDING,
    POW_FOR_REVIEW,
    POW_STATUSES,
    AnnualBudget,
    ProgramOfWork,
    _money,
    _to_decimal,
)
from ..utils import coerce_fields, parse_optional_int, require, require_choice, require_non_negative
from . import budget_ledger
from .numbering import flush_numbered, next_pow_number, pow_sequence_key

logger = logging.getLogger(__name__)

CREATE_FIELDS = {
    "project_title": "str",
    "description": "str",
    "location": "str",
    "municipality": "str",
    "category": "str",
    "budget_id": "int",
    "fiscal_year": "int",
    "estimated_cost": "money",
    "source_of_fund": "str",
    "ded_status": "str",
    "plans_specs_ready": "bool",
    "target_bidding_date": "date",
    "target_start_date": "date",
    "target_completion_date": "date",
    "calendar_days": "int",
    "project_id": "int",
    "remarks": "str",
}

# fiscal_year is baked into pow_number; bidding_id belongs to the bidding lifecycle
UPDATE_FIELDS = {
    "project_title": "str",
    "description": "str",
    "location": "str",
    "municipality": "str",
    "category": "str",
    "budget_id": "int",
    "estimated_cost": "money",
    "source_of_fund": "str",
    "status": "str",
    "ded_status": "str",
    "ded_completed_date": "date",
    "plans_specs_ready": "bool",
    "target_bidding_date": "date",
    "target_start_date": "date",
    "target_completion_date": "date",
    "calendar_days": "int",
    "project_id": "int",
    "remarks": "str",
}


def _resolve_budget_id(budget_id: Optional[int]) -> Optional[int]:
    """Keep the reference only if the budget exists (missing optional refs are skipped)."""
    if budget_id is None:
        return None
    if db.session.get(AnnualBudget, budget_id) is None:
        logger.debug("POW budget %s not found, left unlinked", budget_id)
        return None
    return budget_id


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@retry_on_conflict
def create_pow(data: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(data, CREATE_FIELDS)
    require(values, "fiscal_year", "estimated_cost")
    require_non_negative(values["estimated_cost"], "estimated_cost")
    values["estimated_cost"] = _money(values["estimated_cost"])

    with atomic():
        values["budget_id"] = _resolve_budget_id(values.get("budget_id"))
        if not values.get("source_of_fund"):
            values["source_of_fund"] = current_app.config["DEFAULT_SOURCE_OF_FUND"]
        if not values.get("ded_status"):
            values["ded_status"] = "Not Started"

        pow_number = next_pow_number(values["fiscal_year"])
        pow_ = ProgramOfWork(pow_number=pow_number, status=POW_DRAFT, **values)
        db.session.add(pow_)
        flush_numbered(pow_sequence_key(values["fiscal_year"]))

        log_action(pow_, "CREATE", after=serialize_model(pow_))
        budget_ledger.allocate(pow_.budget_id, pow_.estimated_cost)
        pow_id = pow_.id

    logger.info("POW %s created (cost=%s budget=%s)", pow_number, values["estimated_cost"], values["budget_id"])
    return {"id": pow_id, "pow_number": pow_number}


def update_pow(pow_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(patch, UPDATE_FIELDS)
    if "estimated_cost" in values:
        require(values, "estimated_cost")
        require_non_negative(values["estimated_cost"], "estimated_cost")
        values["estimated_cost"] = _money(values["estimated_cost"])
    if "status" in values:
        require(values, "status")
        require_choice(values["status"], POW_STATUSES, "status")

    with atomic():
        pow_ = db.session.get(ProgramOfWork, pow_id)
        if pow_ is None:
            raise NotFound("ProgramOfWork", pow_id)

        before = serialize_model(pow_)
        old_budget_id = pow_.budget_id
        old_cost = _to_decimal(pow_.estimated_cost)

        if "budget_id" in values:
            values["budget_id"] = _resolve_budget_id(values["budget_id"])
        for key, value in values.items():
            setattr(pow_, key, value)

        ledger_changed = pow_.budget_id != old_budget_id or _to_decimal(pow_.estimated_cost) != old_cost
        if ledger_changed and current_app.config.get("BUDGET_REALLOCATE_ON_UPDATE", True):
            budget_ledger.deallocate(old_budget_id, old_cost)
            budget_ledger.allocate(pow_.budget_id, pow_.estimated_cost)

        db.session.flush()
        log_action(pow_, "UPDATE", before=before, after=serialize_model(pow_))

    return {"success": True}


def delete_pow(pow_id: int) -> Dict[str, Any]:
    with atomic():
        pow_ = db.session.get(ProgramOfWork, pow_id)
        if pow_ is None:
            raise NotFound("ProgramOfWork", pow_id)

        budget_ledger.deallocate(pow_.budget_id, pow_.estimated_cost)

        # Biddings survive their POW (pow_id set null)
        for bidding in pow_.biddings:
            bidding.pow_id = None

        log_action(pow_, "DELETE", before=serialize_model(pow_))
        pow_number = pow_.pow_number
        db.session.delete(pow_)

    logger.info("POW %s deleted", pow_number)
    return {"success": True}


# ---------------------------------------------------------------------
# Bidding hooks (called inside the bidding transaction)
# ---------------------------------------------------------------------
def _set_status(pow_: ProgramOfWork, status: str, **changes: Any) -> None:
    before = serialize_model(pow_)
    pow_.status = status
    for key, value in changes.items():
        setattr(pow_, key, value)
    db.session.flush()
    log_action(pow_, "UPDATE", before=before, after=serialize_model(pow_))
    logger.info("POW %s -> %s", pow_.pow_number, status)


def on_bidding_created(pow_id: Optional[int], bidding_id: int) -> Optional[ProgramOfWork]:
    pow_ = db.session.get(ProgramOfWork, pow_id) if pow_id is not None else None
    if pow_ is None:
        return None
    _set_status(pow_, POW_FOR_BIDDING, bidding_id=bidding_id)
    return pow_


def on_bidding_awarded(pow_id: Optional[int]) -> Optional[ProgramOfWork]:
    pow_ = db.session.get(ProgramOfWork, pow_id) if pow_id is not None else None
    if pow_ is None:
        logger.debug("award: POW %s not found, skipped", pow_id)
        return None
    _set_status(pow_, POW_AWARDED)
    return pow_


def on_bidding_deleted(pow_id: Optional[int], bidding_id: int) -> Optional[ProgramOfWork]:
    """Send the POW back to Approved unless it already moved on to another bidding."""
    pow_ = db.session.get(ProgramOfWork, pow_id) if pow_id is not None else None
    if pow_ is None:
        return None
    if pow_.bidding_id not in (None, bidding_id):
        logger.debug("POW %s is linked to bidding %s, not reverted", pow_.pow_number, pow_.bidding_id)
        return pow_
    _set_status(pow_, POW_APPROVED, bidding_id=None)
    return pow_


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
@fail_closed
def get_pow(pow_id: int) -> Optional[ProgramOfWork]:
    return db.session.get(ProgramOfWork, pow_id)


def _count_status(status: str):
    return func.coalesce(func.sum(case((ProgramOfWork.status == status, 1), else_=0)), 0)


@fail_closed
def pow_stats(fiscal_year=None) -> Dict[str, Any]:
    query = db.session.query(
        func.count(ProgramOfWork.id),
        func.coalesce(func.sum(ProgramOfWork.estimated_cost), 0),
        _count_status(POW_DRAFT),
        _count_status(POW_FOR_REVIEW),
        _count_status(POW_APPROVED),
        _count_status(POW_FOR_BIDDING),
        _count_status(POW_AWARDED),
        _count_status(POW_CANCELLED),
    )
    fiscal_year = parse_optional_int(fiscal_year, "fiscal_year")
    if fiscal_year is not None:
        query = query.filter(ProgramOfWork.fiscal_year == fiscal_year)

    total, total_cost, draft, for_review, approved, for_bidding, awarded, cancelled = query.one()
    return {
        "total": int(total or 0),
        "total_cost": _money(_to_decimal(total_cost)),
        "draft": int(draft),
        "for_review": int(for_review),
        "approved": int(approved),
        "for_bidding": int(for_bidding),
        "awarded": int(awarded),
        "cancelled": int(cancelled),
    }
