"""Performance rating derivation and its propagation to contractors and contracts."""

from decimal import Decimal

import pytest

from peo_portal.errors import NotFound, ValidationFailure
from peo_portal.extensions import db
from peo_portal.models import ContractHistory, Contractor, PerformanceRating
from peo_portal.services import contractors, ratings
from peo_portal.services.ratings import compute_overall_rating

ALL_FIVES = {
    "quality_rating": 5,
    "timeliness_rating": 5,
    "safety_rating": 5,
    "resource_rating": 5,
    "communication_rating": 5,
}


def _contractor(contractor_id):
    return db.session.get(Contractor, contractor_id)


def _rating(rating_id):
    return db.session.get(PerformanceRating, rating_id)


class TestComputeOverallRating:

    def test_mean_of_all_scores(self):
        scores = {
            "quality_rating": 5,
            "timeliness_rating": 4,
            "safety_rating": 4,
            "resource_rating": 4,
            "communication_rating": 3,
        }
        assert compute_overall_rating(scores) == Decimal("4.00")

    def test_zero_and_missing_scores_are_ignored(self):
        scores = {
            "quality_rating": 0,
            "timeliness_rating": 4,
            "safety_rating": None,
            "resource_rating": 5,
            "communication_rating": None,
        }
        assert compute_overall_rating(scores) == Decimal("4.50")

    def test_nothing_rated(self):
        assert compute_overall_rating({"quality_rating": None, "safety_rating": 0}) == Decimal("0.00")
        assert compute_overall_rating({}) == Decimal("0.00")

    def test_rounds_half_up(self):
        assert compute_overall_rating({"a": Decimal("4.50"), "b": Decimal("4.51")}) == Decimal("4.51")
        assert compute_overall_rating({"a": 4, "b": 4, "c": 5}) == Decimal("4.33")


class TestCreateRating:

    def test_updates_contractor(self, contractor_id):
        result = ratings.create_performance_rating(
            {"contractor_id": contractor_id, "quality_rating": 5, "timeliness_rating": 4, "evaluation_period": "Q1 2026"}
        )
        assert _rating(result["id"]).overall_rating == Decimal("4.50")

        c = _contractor(contractor_id)
        assert c.evaluation_rating == Decimal("4.50")
        assert c.overall_rating == Decimal("4.50")

    def test_average_over_evaluations(self, contractor_id):
        ratings.create_performance_rating({"contractor_id": contractor_id, **ALL_FIVES})
        ratings.create_performance_rating({"contractor_id": contractor_id, "quality_rating": 3})
        assert _contractor(contractor_id).overall_rating == Decimal("4.00")

    def test_writes_rating_into_linked_contract(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id, "100000")
        ratings.create_performance_rating(
            {"contractor_id": contractor_id, "contract_history_id": history_id, "quality_rating": 4, "safety_rating": 5}
        )

        assert db.session.get(ContractHistory, history_id).performance_rating == Decimal("4.50")
        c = _contractor(contractor_id)
        assert c.history_rating == Decimal("4.50")
        assert c.overall_rating == Decimal("4.50")

    def test_evaluations_take_precedence_over_history(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id)
        contractors.update_contract_history(history_id, {"performance_rating": "2"})
        assert _contractor(contractor_id).overall_rating == Decimal("2.00")

        ratings.create_performance_rating({"contractor_id": contractor_id, **ALL_FIVES})

        c = _contractor(contractor_id)
        assert c.history_rating == Decimal("2.00")
        assert c.overall_rating == Decimal("5.00")

        # a later history change does not override the evaluation average
        contractors.update_contract_history(history_id, {"performance_rating": "1"})
        assert _contractor(contractor_id).overall_rating == Decimal("5.00")

    def test_unknown_contract_is_skipped(self, contractor_id):
        result = ratings.create_performance_rating(
            {"contractor_id": contractor_id, "contract_history_id": 999, "quality_rating": 4}
        )
        assert _rating(result["id"]).contract_history_id is None

    def test_contract_of_another_contractor_rejected(self, contractor_id, make_contract):
        other_id = contractors.create_contractor({"name": "Other Builder"})["id"]
        history_id = make_contract(other_id)
        with pytest.raises(ValidationFailure):
            ratings.create_performance_rating(
                {"contractor_id": contractor_id, "contract_history_id": history_id, "quality_rating": 4}
            )
        assert PerformanceRating.query.count() == 0

    def test_unknown_contractor_rejected(self, app):
        with pytest.raises(ValidationFailure):
            ratings.create_performance_rating({"contractor_id": 404, "quality_rating": 4})

    @pytest.mark.parametrize("score", ["6", "-1", "5.01"])
    def test_out_of_range_scores_rejected(self, contractor_id, score):
        with pytest.raises(ValidationFailure):
            ratings.create_performance_rating({"contractor_id": contractor_id, "safety_rating": score})
        assert PerformanceRating.query.count() == 0


class TestUpdateRating:

    def test_omitted_scores_keep_their_value(self, contractor_id):
        rating_id = ratings.create_performance_rating({"contractor_id": contractor_id, **ALL_FIVES})["id"]
        ratings.update_performance_rating(rating_id, {"safety_rating": 0})

        rating = _rating(rating_id)
        assert rating.quality_rating == Decimal("5.00")
        assert rating.overall_rating == Decimal("5.00")

        ratings.update_performance_rating(rating_id, {"quality_rating": 1})
        rating = _rating(rating_id)
        assert rating.overall_rating == Decimal("4.00")
        assert _contractor(contractor_id).overall_rating == Decimal("4.00")

    def test_explicit_null_clears_a_score(self, contractor_id):
        rating_id = ratings.create_performance_rating(
            {"contractor_id": contractor_id, "quality_rating": 1, "safety_rating": 5}
        )["id"]
        ratings.update_performance_rating(rating_id, {"quality_rating": None})
        assert _rating(rating_id).overall_rating == Decimal("5.00")

    def test_update_propagates_to_contract(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id)
        rating_id = ratings.create_performance_rating(
            {"contractor_id": contractor_id, "contract_history_id": history_id, "quality_rating": 4}
        )["id"]
        ratings.update_performance_rating(rating_id, {"timeliness_rating": 2})

        assert db.session.get(ContractHistory, history_id).performance_rating == Decimal("3.00")
        assert _contractor(contractor_id).history_rating == Decimal("3.00")

    def test_contractor_link_is_fixed(self, contractor_id):
        other_id = contractors.create_contractor({"name": "Other Builder"})["id"]
        rating_id = ratings.create_performance_rating({"contractor_id": contractor_id, "quality_rating": 4})["id"]
        ratings.update_performance_rating(rating_id, {"contractor_id": other_id})
        assert _rating(rating_id).contractor_id == contractor_id

    def test_update_missing_rating(self, app):
        with pytest.raises(NotFound):
            ratings.update_performance_rating(8, {"quality_rating": 3})


class TestDeleteRating:

    def test_falls_back_to_history_rating(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id)
        contractors.update_contract_history(history_id, {"performance_rating": "3"})
        rating_id = ratings.create_performance_rating({"contractor_id": contractor_id, **ALL_FIVES})["id"]
        assert _contractor(contractor_id).overall_rating == Decimal("5.00")

        ratings.delete_performance_rating(rating_id)

        c = _contractor(contractor_id)
        assert c.evaluation_rating == Decimal("0.00")
        assert c.overall_rating == Decimal("3.00")

    def test_contract_keeps_last_written_rating(self, contractor_id, make_contract):
        history_id = make_contract(contractor_id)
        rating_id = ratings.create_performance_rating(
            {"contractor_id": contractor_id, "contract_history_id": history_id, "quality_rating": 4}
        )["id"]

        ratings.delete_performance_rating(rating_id)

        assert db.session.get(ContractHistory, history_id).performance_rating == Decimal("4.00")
        assert _contractor(contractor_id).overall_rating == Decimal("4.00")

    def test_last_rating_deleted_without_history(self, contractor_id):
        rating_id = ratings.create_performance_rating({"contractor_id": contractor_id, "quality_rating": 4})["id"]
        ratings.delete_performance_rating(rating_id)
        assert _contractor(contractor_id).overall_rating == Decimal("0.00")
        assert ratings.get_performance_rating(rating_id) is None

    def test_delete_missing_rating(self, app):
        with pytest.raises(NotFound):
            ratings.delete_performance_rating(8)
