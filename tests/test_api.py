"""JSON endpoints through the Flask test client."""

from datetime import date

YEAR = date.today().year


def _post(client, url, payload):
    return client.post(url, json=payload)


class TestHealth:

    def test_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.get_json() == {"app": "PEO Portal", "status": "ok"}


class TestBudgetEndpoints:

    def test_create_and_read(self, client):
        response = _post(client, "/api/budgets", {"fiscalYear": 2026, "totalBudget": "1000000.00"})
        assert response.status_code == 201
        budget_id = response.get_json()["id"]

        body = client.get(f"/api/budgets/{budget_id}").get_json()
        assert body["fiscalYear"] == 2026
        assert body["totalBudget"] == "1000000.00"
        assert body["allocatedAmount"] == "0.00"
        assert body["remainingAmount"] == "1000000.00"
        assert body["isOverAllocated"] is False

        assert client.get("/api/budgets/year/2026").get_json()["id"] == budget_id

    def test_missing_budget_reads_null(self, client):
        response = client.get("/api/budgets/999")
        assert response.status_code == 200
        assert response.get_json() is None

    def test_validation_error_shape(self, client):
        response = _post(client, "/api/budgets", {"fiscalYear": 2026, "totalBudget": "lots"})
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "ValidationFailure"
        assert "total_budget" in body["message"]

    def test_out_of_range_money_is_400(self, client):
        response = _post(client, "/api/pow", {"fiscalYear": 2026, "estimatedCost": "1e40"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "ValidationFailure"
        assert "estimated_cost" in response.get_json()["message"]

    def test_non_object_body_rejected(self, client):
        response = client.post("/api/budgets", json=[1, 2, 3])
        assert response.status_code == 400

    def test_patch_missing_is_404(self, client):
        response = client.patch("/api/budgets/999", json={"remarks": "x"})
        assert response.status_code == 404
        assert response.get_json()["error"] == "NotFound"

    def test_stats(self, client):
        _post(client, "/api/budgets", {"fiscalYear": YEAR, "totalBudget": "500"})
        body = client.get("/api/budgets/stats").get_json()
        assert body["totalBudgets"] == 1
        assert body["totalRemaining"] == "500.00"
        assert body["currentYear"] == YEAR
        assert body["currentBudget"]["fiscalYear"] == YEAR


class TestProcurementFlow:

    def test_budget_pow_bidding_award(self, client):
        budget_id = _post(client, "/api/budgets", {"fiscalYear": 2026, "totalBudget": "1000000"}).get_json()["id"]

        created = _post(
            client,
            "/api/pow",
            {"projectTitle": "Bridge Repair", "fiscalYear": 2026, "estimatedCost": "300000", "budgetId": budget_id},
        )
        assert created.status_code == 201
        pow_body = created.get_json()
        assert pow_body["powNumber"] == "POW-2026-001"

        budget = client.get(f"/api/budgets/{budget_id}").get_json()
        assert budget["allocatedAmount"] == "300000.00"
        assert budget["remainingAmount"] == "700000.00"

        bidding = _post(client, "/api/biddings", {"powId": pow_body["id"], "abc": "300000"}).get_json()
        assert bidding["biddingNumber"] == f"BID-{YEAR}-001"
        pow_ = client.get(f"/api/pow/{pow_body['id']}").get_json()
        assert pow_["status"] == "For Bidding"
        assert pow_["biddingId"] == bidding["id"]

        response = client.patch(
            f"/api/biddings/{bidding['id']}",
            json={"status": "Awarded", "winningBidder": "Palawan Builders Corp.", "contractCost": "295000"},
        )
        assert response.get_json() == {"success": True}
        assert client.get(f"/api/pow/{pow_body['id']}").get_json()["status"] == "Awarded"

        stats = client.get("/api/biddings/stats").get_json()
        assert stats["awarded"] == 1
        assert stats["totalAwarded"] == "295000.00"

    def test_delete_pow_releases_budget(self, client):
        budget_id = _post(client, "/api/budgets", {"fiscalYear": 2026, "totalBudget": "1000000"}).get_json()["id"]
        pow_id = _post(
            client, "/api/pow", {"fiscalYear": 2026, "estimatedCost": "300000", "budgetId": budget_id}
        ).get_json()["id"]

        assert client.delete(f"/api/pow/{pow_id}").get_json() == {"success": True}
        assert client.get(f"/api/budgets/{budget_id}").get_json()["remainingAmount"] == "1000000.00"
        assert client.get(f"/api/pow/{pow_id}").get_json() is None

    def test_pow_stats_by_year(self, client):
        _post(client, "/api/pow", {"fiscalYear": 2026, "estimatedCost": "100"})
        _post(client, "/api/pow", {"fiscalYear": 2027, "estimatedCost": "200"})
        body = client.get("/api/pow/stats?fiscalYear=2027").get_json()
        assert body["total"] == 1
        assert body["totalCost"] == "200.00"

    def test_delete_missing_bidding_is_404(self, client):
        assert client.delete("/api/biddings/5").status_code == 404


class TestContractorEndpoints:

    def test_history_and_rating_flow(self, client):
        contractor_id = _post(client, "/api/contractors", {"name": "Palawan Builders Corp."}).get_json()["id"]

        history_id = _post(
            client,
            "/api/contract-history",
            {"contractorId": contractor_id, "contractAmount": "100000", "status": "Completed"},
        ).get_json()["id"]

        _post(
            client,
            "/api/performance-ratings",
            {
                "contractorId": contractor_id,
                "contractHistoryId": history_id,
                "qualityRating": 5,
                "timelinessRating": 4,
                "safetyRating": 4,
                "resourceRating": 4,
                "communicationRating": 3,
            },
        )

        body = client.get(f"/api/contractors/{contractor_id}").get_json()
        assert body["totalContracts"] == 1
        assert body["completedContracts"] == 1
        assert body["totalContractValue"] == "100000.00"
        assert body["overallRating"] == "4.00"

        history = client.get(f"/api/contract-history/{history_id}").get_json()
        assert history["performanceRating"] == "4.00"

    def test_aggregate_fields_rejected(self, client):
        contractor_id = _post(client, "/api/contractors", {"name": "Palawan Builders Corp."}).get_json()["id"]
        response = client.patch(f"/api/contractors/{contractor_id}", json={"totalContracts": 5})
        assert response.status_code == 400

    def test_rating_out_of_range(self, client):
        contractor_id = _post(client, "/api/contractors", {"name": "Palawan Builders Corp."}).get_json()["id"]
        response = _post(client, "/api/performance-ratings", {"contractorId": contractor_id, "qualityRating": 7})
        assert response.status_code == 400

    def test_lookup_by_tin(self, client):
        contractor_id = _post(client, "/api/contractors", {"name": "A", "tin": "111-222"}).get_json()["id"]
        assert client.get("/api/contractors/tin/111-222").get_json()["id"] == contractor_id

    def test_stats(self, client):
        _post(client, "/api/contractors", {"name": "A"})
        _post(client, "/api/contractors", {"name": "B", "status": "Blacklisted"})
        body = client.get("/api/contractors/stats").get_json()
        assert body["total"] == 2
        assert body["blacklisted"] == 1
        assert body["avgRating"] == "0.00"
