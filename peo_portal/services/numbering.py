"""
Human-readable document numbers.

POW-<fiscal_year>-<seq:03d>   one counter per fiscal year
BID-<year>-<seq:03d>          one counter for all years; <year> is the calendar
                              year of creation, so the sequence does not reset on Jan 1

The counter row is locked (SELECT ... FOR UPDATE where the dialect supports it)
and the number columns are unique, so two writers can never both commit the same
number: the loser gets SequenceConflict and retry_on_conflict re-runs it.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, Iterable

from sqlalchemy.exc import IntegrityError

from ..errors import SequenceConflict
from ..extensions import db
from ..models import Bidding, NumberSequence, ProgramOfWork

logger = logging.getLogger(__name__)

BID_SEQUENCE_KEY = "BID"

_SUFFIX_RE = re.compile(r"-(\d+)$")


def pow_sequence_key(fiscal_year: int) -> str:
    return f"POW-{fiscal_year}"


def _max_suffix(numbers: Iterable[str]) -> int:
    highest = 0
    for number in numbers:
        match = _SUFFIX_RE.search(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _draw(key: str, seed: Callable[[], int], render: Callable[[int], str], taken: Callable[[str], bool]) -> str:
    """
    Increment the counter for `key` and return the rendered number.

    A missing counter is seeded from the rows that already exist, and values whose
    rendered number is already in use are skipped.
    """
    seq = db.session.query(NumberSequence).filter_by(key=key).with_for_update().first()
    if seq is None:
        seq = NumberSequence(key=key, last_value=seed())
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SequenceConflict(key) from exc

    value = seq.last_value + 1
    while taken(render(value)):
        value += 1
    seq.last_value = value
    return render(value)


def next_pow_number(fiscal_year: int) -> str:
    def seed() -> int:
        rows = db.session.query(ProgramOfWork.pow_number).filter(ProgramOfWork.fiscal_year == fiscal_year).all()
        return max(len(rows), _max_suffix(r[0] for r in rows if r[0].startswith(f"POW-{fiscal_year}-")))

    def taken(number: str) -> bool:
        return db.session.query(ProgramOfWork.id).filter_by(pow_number=number).first() is not None

    return _draw(
        pow_sequence_key(fiscal_year),
        seed,
        lambda value: f"POW-{fiscal_year}-{value:03d}",
        taken,
    )


def next_bidding_number(year: int | None = None) -> str:
    year = year or date.today().year

    def seed() -> int:
        rows = db.session.query(Bidding.bidding_number).all()
        return max(len(rows), _max_suffix(r[0] for r in rows))

    def taken(number: str) -> bool:
        return db.session.query(Bidding.id).filter_by(bidding_number=number).first() is not None

    return _draw(BID_SEQUENCE_KEY, seed, lambda value: f"BID-{year}-{value:03d}", taken)


def flush_numbered(key: str) -> None:
    """Flush a freshly numbered row; a unique violation means another writer won the number."""
    try:
        db.session.flush()
    except IntegrityError as exc:
        logger.warning("Unique violation while saving %s", key)
        raise SequenceConflict(key) from exc
