"""Contractor master data and the derived aggregate fields."""

from decimal import Decimal

import pytest

from peo_portal.errors import NotFound, ValidationFailure
from peo_portal.extensions import db
from peo_portal.models import ContractHistory, Contractor, PerformanceRating
from peo_portal.services import contractors, ratings


def _contractor(contractor_id):
    return db.session.get(Contractor, contractor_id)


def _aggregates(contractor_id):
    c = _contractor(contractor_id)
    return {field: getattr(c, field) for field in Contractor.AGGREGATE_FIELDS}


class TestContractorMasterData:

    def test_new_contractor_starts_at_zero(self, contractor_id):
        c = _contractor(contractor_id)
        assert c.status == "Active"
        assert c.total_contracts == 0
        assert c.total_contract_value == Decimal("0.00")
        assert c.overall_rating == Decimal("0.00")

    def test_name_required(self, app):
        with pytest.raises(ValidationFailure):
            contractors.create_contractor({"tin": "000"})

    def test_duplicate_tin_rejected(self, contractor_id):
        with pytest.raises(ValidationFailure):
            contractors.create_contractor({"name": "Copycat Inc.", "tin": "123-456-789-000"})

    def test_other_integrity_errors_are_not_reported_as_duplicate_tin(self, app):
        from sqlalchemy.exc import IntegrityError

        from peo_portal.db_utils import atomic

        with pytest.raises(IntegrityError):
            with atomic():
                db.session.add(Contractor(name=None, tin="999-000"))
                contractors._flush_unique_tin("999-000")
        assert Contractor.query.count() == 0

    def test_contractors_without_tin_coexist(self, app):
        contractors.create_contractor({"name": "A"})
        contractors.create_contractor({"name": "B", "tin": ""})
        assert Contractor.query.count() == 2

    def test_get_by_tin(self, contractor_id):
        assert contractors.get_contractor_by_tin("123-456-789-000").id == contractor_id
        assert contractors.get_contractor_by_tin("nope") is None

    def test_aggregate_fields_cannot_be_set(self, contractor_id):
        with pytest.raises(ValidationFailure):
            contractors.update_contractor(contractor_id, {"overall_rating": "5.00"})
        with pytest.raises(ValidationFailure):
            contractors.create_contractor({"name": "X", "total_contracts": 10})
        assert _contractor(contractor_id).overall_rating == Decimal("0.00")

    def test_blacklist(self, contractor_id):
        contractors.update_contractor(
            contractor_id, {"status": "Blacklisted", "blacklist_reason": "Abandoned project"}
        )
        c = _contractor(contractor_id)
        assert c.status == "Blacklisted"
        assert c.blacklist_reason == "Abandoned project"

    def test_unknown_status_rejected(self, contractor_id):
        with pytest.raises(ValidationFailure):
            contractors.update_contractor(contractor_id, {"status": "Retired"})

    def test_update_missing_contractor(self, app):
        with pytest.raises(NotFound):
            contractors.update_contractor(5, {"name": "Ghost"})

    def test_delete_cascades_to_history_and_ratings(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id, "100000")
        ratings.create_performance_rating(
            {"contractor_id": contractor_id, "contract_history_id": history_id, "quality_rating": 4}
        )

        contractors.delete_contractor(contractor_id)

        assert contractors.get_contractor(contractor_id) is None
        assert ContractHistory.query.count() == 0
        assert PerformanceRating.query.count() == 0


class TestHistoryPath:

    def test_counts_and_value(self, contractor_id, make_contract):
        make_contract(contractor_id, "100000", "Completed")
        make_contract(contractor_id, "250000.50", "Ongoing")
        make_contract(contractor_id)

        agg = _aggregates(contractor_id)
        assert agg["total_contracts"] == 3
        assert agg["total_contract_value"] == Decimal("350000.50")
        assert agg["completed_contracts"] == 1
        assert agg["ongoing_contracts"] == 2

    def test_history_defaults(self, contractor_id, make_contract):
        history = db.session.get(ContractHistory, make_contract(contractor_id))
        assert history.status == "Ongoing"
        assert history.client_name == "Province of Palawan - PEO"
        assert history.performance_rating is None

    def test_status_change_recounts(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id, "100000")
        contractors.update_contract_history(history_id, {"status": "Completed", "actual_completion_date": "2026-03-01"})

        agg = _aggregates(contractor_id)
        assert agg["completed_contracts"] == 1
        assert agg["ongoing_contracts"] == 0

    def test_terminated_counts_only_in_total(self, contractor_id, make_contract):
        make_contract(contractor_id, "100000", "Terminated")
        agg = _aggregates(contractor_id)
        assert agg["total_contracts"] == 1
        assert agg["completed_contracts"] == 0
        assert agg["ongoing_contracts"] == 0

    def test_delete_recounts(self, contractor_id, make_contract):
        keep = make_contract(contractor_id, "100000")
        drop = make_contract(contractor_id, "50000")
        contractors.delete_contract_history(drop)

        agg = _aggregates(contractor_id)
        assert agg["total_contracts"] == 1
        assert agg["total_contract_value"] == Decimal("100000.00")
        assert contractors.get_contract_history(keep) is not None

    def test_history_rating_excludes_unrated_contracts(self, contractor_id, make_contract):
        a = make_contract(contractor_id)
        b = make_contract(contractor_id)
        make_contract(contractor_id)
        contractors.update_contract_history(a, {"performance_rating": "4"})
        contractors.update_contract_history(b, {"performance_rating": "3"})

        agg = _aggregates(contractor_id)
        assert agg["history_rating"] == Decimal("3.50")
        assert agg["overall_rating"] == Decimal("3.50")

    def test_history_rating_out_of_range(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id)
        with pytest.raises(ValidationFailure):
            contractors.update_contract_history(history_id, {"performance_rating": "5.5"})

    def test_unknown_contractor_rejected(self, app):
        with pytest.raises(ValidationFailure):
            contractors.create_contract_history({"contractor_id": 321, "contract_amount": "1"})
        assert ContractHistory.query.count() == 0

    def test_contractor_is_required(self, app):
        with pytest.raises(ValidationFailure):
            contractors.create_contract_history({"contract_amount": "1"})

    def test_other_contractors_unaffected(self, contractor_id, make_contract):
        other_id = contractors.create_contractor({"name": "Other Builder"})["id"]
        make_contract(contractor_id, "100000")
        assert _contractor(other_id).total_contracts == 0

    def test_update_missing_history(self, app):
        with pytest.raises(NotFound):
            contractors.update_contract_history(77, {"status": "Completed"})
        with pytest.raises(NotFound):
            contractors.delete_contract_history(77)


class TestRecompute:

    def test_refresh_is_idempotent(self, contractor_id, make_contract):
        make_contract(contractor_id, "100000", "Completed")
        make_contract(contractor_id, "250000", "Ongoing")
        ratings.create_performance_rating({"contractor_id": contractor_id, "quality_rating": 4, "safety_rating": 5})
        before = _aggregates(contractor_id)

        contractors.refresh_contractor_stats(contractor_id)
        contractors.update_contractor_overall_rating(contractor_id)
        contractors.refresh_contractor_stats(contractor_id)
        db.session.commit()

        assert _aggregates(contractor_id) == before

    def test_recompute_all_repairs_drift(self, contractor_id, make_contract):
        make_contract(contractor_id, "100000", "Completed")
        before = _aggregates(contractor_id)

        c = _contractor(contractor_id)
        c.total_contracts = 99
        c.total_contract_value = Decimal("1.00")
        c.overall_rating = Decimal("5.00")
        db.session.commit()

        assert contractors.recompute_all_contractors() == 1
        assert _aggregates(contractor_id) == before

    def test_missing_contractor_is_skipped(self, app):
        assert contractors.refresh_contractor_stats(404) is None
        assert contractors.update_contractor_overall_rating(None) is None


class TestContractorStats:

    def test_stats(self, contractor_id, make_contract):
        other = contractors.create_contractor({"name": "Suspended Co.", "status": "Suspended"})["id"]
        make_contract(contractor_id, "100000")
        make_contract(other, "50000")
        ratings.create_performance_rating({"contractor_id": contractor_id, "quality_rating": 4})

        stats = contractors.contractor_stats()
        assert stats["total"] == 2
        assert stats["active"] == 1
        assert stats["suspended"] == 1
        assert stats["blacklisted"] == 0
        assert stats["total_contract_value"] == Decimal("150000.00")
        assert stats["avg_rating"] == Decimal("2.00")
