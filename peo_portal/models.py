"""
PEO Portal – Procurement Domain Models

Tables for the procurement lifecycle:
- AnnualBudget (20% Development Fund) -> owns allocated / remaining balance
- ProgramOfWork (POW) -> planned project, debits an AnnualBudget
- Bidding -> procurement process for a POW
- Contractor -> master data + DERIVED aggregate statistics
- ContractHistory / PerformanceRating -> owned by a Contractor, feed its aggregates

Support tables:
- NumberSequence (POW/BID numbering counters)
- AuditLog

IMPORTANT:
- Money is Numeric(18, 2) and handled as Decimal everywhere. Never float.
- Contractor aggregate fields are written only by services/contractors.py.
- AnnualBudget.allocated_amount / remaining_amount are written only by services/budget_ledger.py.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _rating(x: Decimal) -> Decimal:
    """Ratings are stored with 2 decimals (0.00 - 5.00)."""
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------
BUDGET_STATUSES = ("Draft", "Approved", "Closed")

POW_DRAFT = "Draft"
POW_FOR_REVIEW = "For Review"
POW_APPROVED = "Approved"
POW_FOR_BIDDING = "For Bidding"
POW_AWARDED = "Awarded"
POW_CANCELLED = "Cancelled"
POW_STATUSES = (POW_DRAFT, POW_FOR_REVIEW, POW_APPROVED, POW_FOR_BIDDING, POW_AWARDED, POW_CANCELLED)

BID_PRE_PROCUREMENT = "Pre-Procurement"
BID_ADVERTISEMENT = "Advertisement"
BID_EVALUATION = "Bid Evaluation"
BID_POST_QUALIFICATION = "Post-Qualification"
BID_AWARDED = "Awarded"
BID_FAILED = "Failed"
BIDDING_STATUSES = (
    BID_PRE_PROCUREMENT,
    BID_ADVERTISEMENT,
    BID_EVALUATION,
    BID_POST_QUALIFICATION,
    BID_AWARDED,
    BID_FAILED,
)

CONTRACTOR_STATUSES = ("Active", "Blacklisted", "Suspended", "Inactive")

CONTRACT_ONGOING = "Ongoing"
CONTRACT_COMPLETED = "Completed"
CONTRACT_STATUSES = (CONTRACT_ONGOING, CONTRACT_COMPLETED, "Terminated", "Suspended")

RATING_FIELDS = (
    "quality_rating",
    "timeliness_rating",
    "safety_rating",
    "resource_rating",
    "communication_rating",
)


# ---------------------------------------------------------------------
# Budget / POW / Bidding
# ---------------------------------------------------------------------
class AnnualBudget(db.Model):
    """Annual 20% Development Fund budget. One row per fiscal year."""

    __tablename__ = "annual_budgets"

    id = db.Column(db.Integer, primary_key=True)

    fiscal_year = db.Column(db.Integer, nullable=False, unique=True, index=True)

    total_budget = db.Column(db.Numeric(18, 2), nullable=False)
    allocated_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    remaining_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))

    status = db.Column(db.String(50), nullable=False, default="Draft", index=True)
    approved_date = db.Column(db.Date, nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_over_allocated(self) -> bool:
        """Read-side flag: allocation exceeds the total (remaining went negative)."""
        return _to_decimal(self.remaining_amount) < Decimal("0.00")

    def __repr__(self):
        return f"<AnnualBudget FY{self.fiscal_year}>"


class ProgramOfWork(db.Model):
    __tablename__ = "program_of_works"

    id = db.Column(db.Integer, primary_key=True)

    pow_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    project_title = db.Column(db.Text)
    description = db.Column(db.Text)
    location = db.Column(db.Text)
    municipality = db.Column(db.String(100))
    category = db.Column(db.String(100), index=True)

    budget_id = db.Column(
        db.Integer,
        db.ForeignKey("annual_budgets.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    fiscal_year = db.Column(db.Integer, nullable=False, index=True)

    estimated_cost = db.Column(db.Numeric(18, 2), nullable=False)
    source_of_fund = db.Column(db.String(200))

    status = db.Column(db.String(50), nullable=False, default=POW_DRAFT, index=True)
    ded_status = db.Column(db.String(50), default="Not Started")
    ded_completed_date = db.Column(db.Date)
    plans_specs_ready = db.Column(db.Boolean, default=False, nullable=False)

    target_bidding_date = db.Column(db.Date)
    target_start_date = db.Column(db.Date)
    target_completion_date = db.Column(db.Date)
    calendar_days = db.Column(db.Integer)

    # Set once construction starts (projects module is not part of this engine)
    project_id = db.Column(db.Integer, nullable=True, index=True)
    # Latest bidding opened for this POW (maintained by services/biddings.py)
    bidding_id = db.Column(db.Integer, nullable=True, index=True)

    remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    budget = db.relationship("AnnualBudget", backref=db.backref("pows", lazy=True))

    def __repr__(self):
        return f"<ProgramOfWork {self.pow_number}>"


class Bidding(db.Model):
    __tablename__ = "biddings"

    id = db.Column(db.Integer, primary_key=True)

    bidding_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    pow_id = db.Column(
        db.Integer,
        db.ForeignKey("program_of_works.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    project_title = db.Column(db.Text)
    abc = db.Column(db.Numeric(18, 2), nullable=False)  # Approved Budget for the Contract
    procurement_mode = db.Column(db.String(100), index=True)
    status = db.Column(db.String(50), nullable=False, default=BID_PRE_PROCUREMENT, index=True)

    # Milestones
    pre_procurement_date = db.Column(db.Date)
    advertisement_date = db.Column(db.Date)
    pre_bid_date = db.Column(db.Date)
    bid_submission_deadline = db.Column(db.DateTime)
    bid_opening_date = db.Column(db.Date)
    bid_evaluation_date = db.Column(db.Date)
    post_qualification_date = db.Column(db.Date)
    bac_resolution_date = db.Column(db.Date)
    noa_date = db.Column(db.Date)  # Notice of Award
    contract_signing_date = db.Column(db.Date)
    ntp_date = db.Column(db.Date)  # Notice to Proceed

    winning_bidder = db.Column(db.Text)
    winning_bid_amount = db.Column(db.Numeric(18, 2))
    contract_cost = db.Column(db.Numeric(18, 2))
    number_of_bidders = db.Column(db.Integer)
    failed_bidding_count = db.Column(db.Integer, default=0, nullable=False)
    failed_reason = db.Column(db.Text)

    remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pow = db.relationship("ProgramOfWork", backref=db.backref("biddings", lazy=True))

    def __repr__(self):
        return f"<Bidding {self.bidding_number}>"


# ---------------------------------------------------------------------
# Contractors
# ---------------------------------------------------------------------
class Contractor(db.Model):
    """
    Contractor master data.

    Aggregate fields (total_contracts ... overall_rating) are DERIVED from the
    contractor's ContractHistory and PerformanceRating rows. Clients never set them.
    """

    __tablename__ = "contractors"

    AGGREGATE_FIELDS = (
        "total_contracts",
        "total_contract_value",
        "completed_contracts",
        "ongoing_contracts",
        "history_rating",
        "evaluation_rating",
        "overall_rating",
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.Text, nullable=False)
    trade_name = db.Column(db.Text)
    tin = db.Column(db.String(50), nullable=True, unique=True, index=True)
    philgeps_number = db.Column(db.String(50))
    pcab_license = db.Column(db.String(50))
    pcab_category = db.Column(db.String(20), index=True)
    pcab_classification = db.Column(db.String(100))
    license_expiry_date = db.Column(db.Date)

    address = db.Column(db.Text)
    city = db.Column(db.String(100))
    province = db.Column(db.String(100))
    contact_person = db.Column(db.String(200))
    email = db.Column(db.String(320))
    phone = db.Column(db.String(50))
    mobile = db.Column(db.String(50))

    status = db.Column(db.String(50), nullable=False, default="Active", index=True)
    blacklist_reason = db.Column(db.Text)
    blacklist_date = db.Column(db.Date)

    # Derived aggregates
    total_contracts = db.Column(db.Integer, nullable=False, default=0)
    total_contract_value = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    completed_contracts = db.Column(db.Integer, nullable=False, default=0)
    ongoing_contracts = db.Column(db.Integer, nullable=False, default=0)
    history_rating = db.Column(db.Numeric(3, 2), nullable=False, default=Decimal("0.00"))
    evaluation_rating = db.Column(db.Numeric(3, 2), nullable=False, default=Decimal("0.00"))
    overall_rating = db.Column(db.Numeric(3, 2), nullable=False, default=Decimal("0.00"))

    remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contracts = db.relationship(
        "ContractHistory",
        back_populates="contractor",
        cascade="all, delete-orphan",
    )

    ratings = db.relationship(
        "PerformanceRating",
        back_populates="contractor",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Contractor {self.name}>"


class ContractHistory(db.Model):
    __tablename__ = "contract_history"

    id = db.Column(db.Integer, primary_key=True)

    contractor_id = db.Column(
        db.Integer,
        db.ForeignKey("contractors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    project_id = db.Column(db.Integer, nullable=True)
    bidding_id = db.Column(db.Integer, nullable=True, index=True)

    contract_number = db.Column(db.String(100))
    project_title = db.Column(db.Text)
    client_name = db.Column(db.String(200))
    contract_amount = db.Column(db.Numeric(18, 2), nullable=True)

    start_date = db.Column(db.Date)
    original_completion_date = db.Column(db.Date)
    actual_completion_date = db.Column(db.Date)

    status = db.Column(db.String(50), nullable=False, default=CONTRACT_ONGOING, index=True)

    time_extensions = db.Column(db.Integer, default=0, nullable=False)
    extension_days = db.Column(db.Integer, default=0, nullable=False)
    variation_orders = db.Column(db.Integer, default=0, nullable=False)
    variation_amount = db.Column(db.Numeric(18, 2), default=Decimal("0.00"))
    final_amount = db.Column(db.Numeric(18, 2))
    liquidated_damages = db.Column(db.Numeric(18, 2), default=Decimal("0.00"))

    # Written by the rating aggregator when a PerformanceRating is linked to this contract
    performance_rating = db.Column(db.Numeric(3, 2), nullable=True)

    remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contractor = db.relationship("Contractor", back_populates="contracts")

    ratings = db.relationship("PerformanceRating", back_populates="contract_history", lazy=True)

    def __repr__(self):
        return f"<ContractHistory {self.contract_number or self.id}>"


class PerformanceRating(db.Model):
    """Detailed evaluation of a contractor; overall_rating is derived from the five sub-scores."""

    __tablename__ = "performance_ratings"

    id = db.Column(db.Integer, primary_key=True)

    contractor_id = db.Column(
        db.Integer,
        db.ForeignKey("contractors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    contract_history_id = db.Column(
        db.Integer,
        db.ForeignKey("contract_history.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    project_id = db.Column(db.Integer, nullable=True)
    evaluation_period = db.Column(db.String(50))  # e.g. "Q1 2026", "Final"

    quality_rating = db.Column(db.Numeric(3, 2))
    timeliness_rating = db.Column(db.Numeric(3, 2))
    safety_rating = db.Column(db.Numeric(3, 2))
    resource_rating = db.Column(db.Numeric(3, 2))
    communication_rating = db.Column(db.Numeric(3, 2))

    overall_rating = db.Column(db.Numeric(3, 2), nullable=False, default=Decimal("0.00"))

    evaluator_name = db.Column(db.String(200))
    evaluator_position = db.Column(db.String(100))
    evaluation_date = db.Column(db.Date)

    strengths = db.Column(db.Text)
    areas_for_improvement = db.Column(db.Text)
    comments = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contractor = db.relationship("Contractor", back_populates="ratings")
    contract_history = db.relationship("ContractHistory", back_populates="ratings")

    def sub_scores(self) -> dict:
        return {field: getattr(self, field) for field in RATING_FIELDS}


# ---------------------------------------------------------------------
# Support tables
# ---------------------------------------------------------------------
class NumberSequence(db.Model):
    """
    Monotonic counter per numbering scope.

    Keys:
    - "POW-<fiscal_year>" -> POW-2026-001, POW-2026-002, ...
    - "BID"               -> BID-<year>-001, ... (one counter across years)
    """

    __tablename__ = "number_sequences"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), nullable=False, unique=True, index=True)
    last_value = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuditLog(db.Model):
    """Audit trail of every mutation, written in the same transaction as the change."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
