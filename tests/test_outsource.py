"""
API tests for outsource entities and loan assignment
"""
import pytest


def entity_payload(**overrides):
    payload = {
        "name": "Sri Lakshmi Finance",
        "entity_type": "organization",
        "contact_person": "Venkat Rao",
        "phone": "9988776655",
        "email": "Desk@SriLakshmi.example",
        "address": "Main Bazaar, Guntur",
        "interest_rate": 9.5,
        "max_loan_amount": 500000
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def entity(client, officer_headers):
    response = await client.post("/api/v1/outsource/entities", json=entity_payload(), headers=officer_headers)
    return response.json()["entity"]


class TestEntities:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_entity(self, client, officer_headers):
        response = await client.post(
            "/api/v1/outsource/entities", json=entity_payload(), headers=officer_headers
        )

        assert response.status_code == 201
        entity = response.json()["entity"]
        assert entity["status"] == "active"
        assert entity["email"] == "desk@srilakshmi.example"
        assert entity["display_name"] == "Sri Lakshmi Finance"
        assert entity["created_by"]["username"] == "officer"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_individual_display_name(self, client, officer_headers):
        response = await client.post(
            "/api/v1/outsource/entities",
            json=entity_payload(entity_type="individual", name="Private lender"),
            headers=officer_headers
        )

        assert response.json()["entity"]["display_name"] == "Venkat Rao"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_employee_cannot_create(self, client, employee_headers):
        response = await client.post(
            "/api/v1/outsource/entities", json=entity_payload(), headers=employee_headers
        )

        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rate_out_of_bounds(self, client, officer_headers):
        response = await client.post(
            "/api/v1/outsource/entities", json=entity_payload(interest_rate=40), headers=officer_headers
        )

        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_and_search(self, client, officer_headers, employee_headers):
        await client.post("/api/v1/outsource/entities", json=entity_payload(), headers=officer_headers)
        await client.post(
            "/api/v1/outsource/entities",
            json=entity_payload(name="Godavari Capital", contact_person="Anil"),
            headers=officer_headers
        )

        response = await client.get(
            "/api/v1/outsource/entities", params={"search": "godavari"}, headers=employee_headers
        )

        data = response.json()
        assert [e["name"] for e in data["entities"]] == ["Godavari Capital"]
        assert data["pagination"]["total"] == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_entity(self, client, entity, officer_headers):
        response = await client.put(
            f"/api/v1/outsource/entities/{entity['id']}",
            json={"interest_rate": 10},
            headers=officer_headers
        )

        assert response.status_code == 200
        assert response.json()["entity"]["interest_rate"] == 10.0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_delete_deactivates(self, client, entity, officer_headers, admin_headers):
        forbidden = await client.delete(f"/api/v1/outsource/entities/{entity['id']}", headers=officer_headers)
        assert forbidden.status_code == 403

        response = await client.delete(f"/api/v1/outsource/entities/{entity['id']}", headers=admin_headers)
        assert response.json()["entity"]["status"] == "inactive"

        fetched = await client.get(f"/api/v1/outsource/entities/{entity['id']}", headers=admin_headers)
        assert fetched.status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_entity(self, client, admin_headers):
        response = await client.get("/api/v1/outsource/entities/9999", headers=admin_headers)

        assert response.status_code == 404


class TestLoanAssignment:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_assign_loan(self, client, entity, employee_loan, officer_headers):
        response = await client.post(
            "/api/v1/outsource/loans",
            json={"loan_id": employee_loan.id, "entity_id": entity["id"]},
            headers=officer_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["profit_margin"] == 2.5
        loan = data["loan"]
        assert loan["outsourced_to"]["name"] == "Sri Lakshmi Finance"
        assert loan["outsource_amount"] == 50000.0
        assert loan["outsource_interest_rate"] == 9.5

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_assign_twice_fails(self, client, entity, employee_loan, officer_headers):
        body = {"loan_id": employee_loan.id, "entity_id": entity["id"], "custom_amount": 40000}
        await client.post("/api/v1/outsource/loans", json=body, headers=officer_headers)

        response = await client.post("/api/v1/outsource/loans", json=body, headers=officer_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Loan is already outsourced"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_assign_unknown_loan(self, client, entity, officer_headers):
        response = await client.post(
            "/api/v1/outsource/loans",
            json={"loan_id": 9999, "entity_id": entity["id"]},
            headers=officer_headers
        )

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_available_and_outsourced_lists(
        self, client, entity, make_loan, admin_user, officer_headers
    ):
        pool_loan = await make_loan(admin_user, account="account3", applicant_name="Pool Loan")
        await make_loan(admin_user, applicant_name="Regular Loan")

        available = await client.get("/api/v1/outsource/available-loans", headers=officer_headers)
        assert [loan["applicant_name"] for loan in available.json()["available_loans"]] == ["Pool Loan"]

        await client.post(
            "/api/v1/outsource/loans",
            json={"loan_id": pool_loan.id, "entity_id": entity["id"]},
            headers=officer_headers
        )

        available = await client.get("/api/v1/outsource/available-loans", headers=officer_headers)
        outsourced = await client.get("/api/v1/outsource/loans", headers=officer_headers)
        assert available.json()["available_loans"] == []
        assert [loan["applicant_name"] for loan in outsourced.json()["outsourced_loans"]] == ["Pool Loan"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_assignment_counts_on_dashboard(
        self, client, entity, employee_loan, officer_headers, admin_headers
    ):
        before = await client.get("/api/v1/loans/dashboard/stats", headers=admin_headers)
        assert before.json()["stats"]["outsourced_loans"] == 0

        await client.post(
            "/api/v1/outsource/loans",
            json={"loan_id": employee_loan.id, "entity_id": entity["id"]},
            headers=officer_headers
        )

        after = await client.get("/api/v1/loans/dashboard/stats", headers=admin_headers)
        assert after.json()["stats"]["outsourced_loans"] == 1
        assert after.json()["stats"]["outsourced_amount"] == 50000.0
