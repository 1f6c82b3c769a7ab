"""
Budget Ledger – allocation accounting for the annual 20% Development Fund.

Invariant after every committed operation:
    remaining_amount == total_budget - allocated_amount

allocate / deallocate are called by the POW lifecycle inside ITS transaction;
they never commit. Over-allocation is allowed (remaining goes negative) and is
exposed read-side via AnnualBudget.is_over_allocated.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..audit import log_action, serialize_model
from ..db_utils import atomic, fail_closed
from ..errors import NotFound, ValidationFailure
from ..extensions import db
from ..models import BUDGET_STATUSES, AnnualBudget, _money, _to_decimal
from ..utils import coerce_fields, parse_optional_int, require, require_choice, require_non_negative

logger = logging.getLogger(__name__)

CREATE_FIELDS = {
    "fiscal_year": "int",
    "total_budget": "money",
    "status": "str",
    "approved_date": "date",
    "remarks": "str",
}

# allocated/remaining are ledger-owned; fiscal_year identifies the row
UPDATE_FIELDS = {
    "total_budget": "money",
    "status": "str",
    "approved_date": "date",
    "remarks": "str",
}


def _rebalance(budget: AnnualBudget) -> None:
    budget.remaining_amount = _money(_to_decimal(budget.total_budget) - _to_decimal(budget.allocated_amount))


# ---------------------------------------------------------------------
# Ledger adjustments (no commit)
# ---------------------------------------------------------------------
def allocate(budget_id: Optional[int], amount) -> Optional[AnnualBudget]:
    """Debit `amount` from the budget. Unknown budget -> no-op (returns None)."""
    if budget_id is None:
        return None
    budget = db.session.get(AnnualBudget, budget_id)
    if budget is None:
        logger.debug("allocate: budget %s not found, skipped", budget_id)
        return None

    before = serialize_model(budget)
    budget.allocated_amount = _money(_to_decimal(budget.allocated_amount) + _to_decimal(amount))
    _rebalance(budget)
    log_action(budget, "UPDATE", before=before, after=serialize_model(budget))

    logger.info(
        "Budget FY%s allocated %s (allocated=%s remaining=%s)",
        budget.fiscal_year,
        _to_decimal(amount),
        budget.allocated_amount,
        budget.remaining_amount,
    )
    if budget.is_over_allocated:
        logger.warning("Budget FY%s is over-allocated by %s", budget.fiscal_year, -budget.remaining_amount)
    return budget


def deallocate(budget_id: Optional[int], amount) -> Optional[AnnualBudget]:
    """Credit `amount` back. allocated_amount is clamped at 0; remaining follows."""
    if budget_id is None:
        return None
    budget = db.session.get(AnnualBudget, budget_id)
    if budget is None:
        logger.debug("deallocate: budget %s not found, skipped", budget_id)
        return None

    before = serialize_model(budget)
    allocated = _to_decimal(budget.allocated_amount) - _to_decimal(amount)
    budget.allocated_amount = _money(max(Decimal("0.00"), allocated))
    _rebalance(budget)
    log_action(budget, "UPDATE", before=before, after=serialize_model(budget))

    logger.info(
        "Budget FY%s released %s (allocated=%s remaining=%s)",
        budget.fiscal_year,
        _to_decimal(amount),
        budget.allocated_amount,
        budget.remaining_amount,
    )
    return budget


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
def create_budget(data: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(data, CREATE_FIELDS)
    require(values, "fiscal_year", "total_budget")
    require_non_negative(values["total_budget"], "total_budget")
    require_choice(values.get("status"), BUDGET_STATUSES, "status")

    with atomic():
        if AnnualBudget.query.filter_by(fiscal_year=values["fiscal_year"]).first() is not None:
            raise ValidationFailure(f"a budget for fiscal year {values['fiscal_year']} already exists")

        budget = AnnualBudget(
            fiscal_year=values["fiscal_year"],
            total_budget=_money(values["total_budget"]),
            allocated_amount=Decimal("0.00"),
            status=values.get("status") or "Draft",
            approved_date=values.get("approved_date"),
            remarks=values.get("remarks"),
        )
        _rebalance(budget)
        db.session.add(budget)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationFailure(f"a budget for fiscal year {values['fiscal_year']} already exists") from exc

        log_action(budget, "CREATE", after=serialize_model(budget))
        budget_id = budget.id

    logger.info("Budget FY%s created (total=%s)", values["fiscal_year"], values["total_budget"])
    return {"id": budget_id}


def update_budget(budget_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
    values = coerce_fields(patch, UPDATE_FIELDS)
    if "total_budget" in values:
        require(values, "total_budget")
        require_non_negative(values["total_budget"], "total_budget")
    if "status" in values:
        require(values, "status")
        require_choice(values["status"], BUDGET_STATUSES, "status")

    with atomic():
        budget = db.session.get(AnnualBudget, budget_id)
        if budget is None:
            raise NotFound("AnnualBudget", budget_id)

        before = serialize_model(budget)
        for key, value in values.items():
            setattr(budget, key, _money(value) if key == "total_budget" else value)
        _rebalance(budget)
        db.session.flush()

        log_action(budget, "UPDATE", before=before, after=serialize_model(budget))

    return {"success": True}


def delete_budget(budget_id: int) -> Dict[str, Any]:
    """POWs keep their rows; their budget_id is cleared."""
    with atomic():
        budget = db.session.get(AnnualBudget, budget_id)
        if budget is None:
            raise NotFound("AnnualBudget", budget_id)

        for pow_ in budget.pows:
            pow_.budget_id = None

        log_action(budget, "DELETE", before=serialize_model(budget))
        db.session.delete(budget)

    logger.info("Budget %s deleted", budget_id)
    return {"success": True}


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
@fail_closed
def get_budget(budget_id: int) -> Optional[AnnualBudget]:
    return db.session.get(AnnualBudget, budget_id)


@fail_closed
def get_budget_by_year(fiscal_year) -> Optional[AnnualBudget]:
    fiscal_year = parse_optional_int(fiscal_year, "fiscal_year")
    return AnnualBudget.query.filter_by(fiscal_year=fiscal_year).first()


@fail_closed
def budget_stats() -> Dict[str, Any]:
    total_budgets, total_allocated, total_remaining = db.session.query(
        func.count(AnnualBudget.id),
        func.coalesce(func.sum(AnnualBudget.allocated_amount), 0),
        func.coalesce(func.sum(AnnualBudget.remaining_amount), 0),
    ).one()

    current_year = date.today().year
    current = AnnualBudget.query.filter_by(fiscal_year=current_year).first()

    return {
        "total_budgets": int(total_budgets or 0),
        "total_allocated": _money(_to_decimal(total_allocated)),
        "total_remaining": _money(_to_decimal(total_remaining)),
        "current_year": current_year,
        "current_budget": current,
    }
