"""
Bidding lifecycle.

Every bidding change that matters to its POW is pushed to the POW in the same transaction:
- create           -> POW "For Bidding", POW.bidding_id = this bidding
- status "Awarded" -> POW "Awarded"
- delete           -> POW back to "Approved", bidding_id cleared
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
    BID_ADVERTISEMENT,
    BID_AWARDED,
    BID_EVALUATION,
    BID_FAILED,
    BID_POST_QUALIFICATION,
    BID_PRE_PROCUREMENT,
    BIDDING_STATUSES,
    Bidding,
    ProgramOfWork,
    _money,
    _to_decimal,
)
from ..utils import coerce_fields, require, require_choice, require_non_negative
from . import pows
from .numbering import BID_SEQUENCE_KEY, flush_numbered, next_bidding_number

logger = logging.getLogger(__name__)

_MONEY_FIELDS = ("abc", "winning_bid_amount", "contract_cost")

CREATE_FIELDS = {
    "pow_id": "int",
    "project_title": "str",
    "abc": "money",
    "procurement_mode": "str",
    "pre_procurement_date": "date",
    "advertisement_date": "date",
    "pre_bid_date": "date",
    "bid_submission_deadline": "datetime",
    "bid_opening_date": "date",
    "remarks": "str",
}

UPDATE_FIELDS = {
    "project_title": "str",
    "abc": "money",
    "procurement_mode": "str",
    "status": "str",
    "pre_procurement_date": "date",
    "advertisement_date": "date",
    "pre_bid_date": "date",
    "bid_submission_deadline": "datetime",
    "bid_opening_date": "date",
    "bid_evaluation_date": "date",
    "post_qualification_date": "date",
    "bac_resolution_date": "date",
    "noa_date": "date",
    "contract_signing_date": "date",
    "ntp_date": "date",
    "winning_bidder": "str",
    "winning_bid_amount": "money",
    "contract_cost": "money",
    "number_of_bidders": "int",
    "failed_bidding_count": "int",
    "failed_reason": "str",
    "remarks": "str",
}


def _normalize_money(values: Dict[str, Any]) -> None:
    for key in _MONEY_FIELDS:
        if values.get(key) is not None:
            require_non_negative(values[key], key)
            values[key] = _money(values[key])


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@retry_on_conflict
def create_bidding(data: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(data, CREATE_FIELDS)
    require(values, "abc")
    _normalize_money(values)

    with atomic():
        pow_ = db.session.get(ProgramOfWork, values["pow_id"]) if values.get("pow_id") is not None else None
        if pow_ is None and values.get("pow_id") is not None:
            logger.debug("Bidding POW %s not found, left unlinked", values["pow_id"])
        values["pow_id"] = pow_.id if pow_ is not None else None
        if not values.get("project_title") and pow_ is not None:
            values["project_title"] = pow_.project_title
        if not values.get("procurement_mode"):
            values["procurement_mode"] = current_app.config["DEFAULT_PROCUREMENT_MODE"]

        bidding_number = next_bidding_number()
        bidding = Bidding(bidding_number=bidding_number, status=BID_PRE_PROCUREMENT, **values)
        db.session.add(bidding)
        flush_numbered(BID_SEQUENCE_KEY)

        log_action(bidding, "CREATE", after=serialize_model(bidding))
        pows.on_bidding_created(bidding.pow_id, bidding.id)
        bidding_id = bidding.id

    logger.info("Bidding %s created (abc=%s pow=%s)", bidding_number, values["abc"], values["pow_id"])
    return {"id": bidding_id, "bidding_number": bidding_number}


def update_bidding(bidding_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(patch, UPDATE_FIELDS)
    if "abc" in values:
        require(values, "abc")
    if "status" in values:
        require(values, "status")
        require_choice(values["status"], BIDDING_STATUSES, "status")
    if "failed_bidding_count" in values and values["failed_bidding_count"] is None:
        values["failed_bidding_count"] = 0
    _normalize_money(values)

    with atomic():
        bidding = db.session.get(Bidding, bidding_id)
        if bidding is None:
            raise NotFound("Bidding", bidding_id)

        before = serialize_model(bidding)
        for key, value in values.items():
            setattr(bidding, key, value)
        db.session.flush()
        log_action(bidding, "UPDATE", before=before, after=serialize_model(bidding))

        if values.get("status") == BID_AWARDED:
            pows.on_bidding_awarded(bidding.pow_id)
            logger.info("Bidding %s awarded to %s", bidding.bidding_number, bidding.winning_bidder)

    return {"success": True}


def delete_bidding(bidding_id: int) -> Dict[str, Any]:
    with atomic():
        bidding = db.session.get(Bidding, bidding_id)
        if bidding is None:
            raise NotFound("Bidding", bidding_id)

        pows.on_bidding_deleted(bidding.pow_id, bidding.id)

        log_action(bidding, "DELETE", before=serialize_model(bidding))
        bidding_number = bidding.bidding_number
        db.session.delete(bidding)

    logger.info("Bidding %s deleted", bidding_number)
    return {"success": True}


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
@fail_closed
def get_bidding(bidding_id: int) -> Optional[Bidding]:
    return db.session.get(Bidding, bidding_id)


def _count_status(status: str):
    return func.coalesce(func.sum(case((Bidding.status == status, 1), else_=0)), 0)


@fail_closed
def bidding_stats() -> Dict[str, Any]:
    row = db.session.query(
        func.count(Bidding.id),
        func.coalesce(func.sum(Bidding.abc), 0),
        func.coalesce(func.sum(Bidding.contract_cost), 0),
        _count_status(BID_PRE_PROCUREMENT),
        _count_status(BID_ADVERTISEMENT),
        _count_status(BID_EVALUATION),
        _count_status(BID_POST_QUALIFICATION),
        _count_status(BID_AWARDED),
        _count_status(BID_FAILED),
    ).one()

    total, total_abc, total_awarded, pre_procurement, advertisement, evaluation, post_qual, awarded, failed = row
    return {
        "total": int(total or 0),
        "total_abc": _money(_to_decimal(total_abc)),
        "total_awarded": _money(_to_decimal(total_awarded)),
        "pre_procurement": int(pre_procurement),
        "advertisement": int(advertisement),
        "bid_evaluation": int(evaluation),
        "post_qualification": int(post_qual),
        "awarded": int(awarded),
        "failed": int(failed),
    }
