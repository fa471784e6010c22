"""
SmartBudget Canada - API Tests
==============================
End-to-end tests of the FastAPI app against a throwaway SQLite database,
with the AI coach in mock mode.
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import database
import main


SALARY_BUDGET = {
    "name": "First budget",
    "province": "ON",
    "life_situation": "single",
    "primary_goal": "buy-home",
    "items": [
        {"type": "income", "category": "employment", "name": "Salary", "amount": 50000, "frequency": "yearly"},
        {"type": "expense", "category": "housing", "name": "Rent", "amount": 1500, "frequency": "monthly"},
    ],
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    database.configure(f"sqlite:///{tmp_path / 'test.db'}")
    database.init_db()
    with TestClient(main.app) as test_client:
        yield test_client


def sign_up(client, email="jane@example.com", password="correct-horse", headers=None):
    response = client.post(
        "/api/auth/signup",
        json={"email": email, "password": password, "name": "Jane"},
        headers=headers or {},
    )
    assert response.status_code == 201
    return response.json()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(client):
    return auth(sign_up(client)["token"])


# =============================================================================
# SERVICE
# =============================================================================

class TestService:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "SmartBudget Canada"
        assert body["status"] == "healthy"

    def test_health_reports_mock_coach(self, client):
        body = client.get("/api/health").json()
        assert body["components"]["llm_integration"] == "mock_mode"


# =============================================================================
# AUTH
# =============================================================================

class TestAuth:

    def test_signup_and_me(self, client):
        body = sign_up(client, email="Jane@Example.com")
        assert body["success"]
        assert body["user"]["email"] == "jane@example.com"
        assert "hashed_password" not in body["user"]

        me = client.get("/api/auth/me", headers=auth(body["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["id"] == body["user"]["id"]

    def test_duplicate_email(self, client):
        sign_up(client)
        response = client.post("/api/auth/signup", json={"email": "jane@example.com", "password": "another-one"})
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already exists."

    def test_short_password_rejected(self, client):
        response = client.post("/api/auth/signup", json={"email": "a@b.ca", "password": "short"})
        assert response.status_code == 422

    def test_signin(self, client):
        sign_up(client)
        good = client.post("/api/auth/signin", json={"email": "JANE@example.com", "password": "correct-horse"})
        assert good.status_code == 200
        assert good.json()["token"]

        bad = client.post("/api/auth/signin", json={"email": "jane@example.com", "password": "wrong-password"})
        assert bad.status_code == 401
        assert bad.json()["detail"] == "Invalid email or password"

    def test_signout_invalidates_token(self, client):
        headers = auth(sign_up(client)["token"])
        assert client.post("/api/auth/signout", headers=headers).json()["success"]
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_expired_session_rejected(self, client, monkeypatch):
        user_id = sign_up(client)["user"]["id"]
        monkeypatch.setenv("SESSION_TTL_HOURS", "-1")
        token = database.create_session(user_id)

        assert database.get_user_by_token(token) is None
        assert client.get("/api/auth/me", headers=auth(token)).status_code == 401

    def test_protected_routes_need_token(self, client):
        assert client.get("/api/assets").status_code == 401
        assert client.get("/api/debts", headers=auth("not-a-token")).status_code == 401


# =============================================================================
# BUDGETS
# =============================================================================

class TestBudgets:

    def test_preview(self, client):
        response = client.post("/api/budgets/preview", json=SALARY_BUDGET)
        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["net_income"] == pytest.approx(3287.61, abs=0.05)
        assert summary["disposable_income"] == pytest.approx(1787.61, abs=0.05)

    def test_invalid_budget_lists_errors(self, client):
        response = client.post("/api/budgets", json={"name": "", "province": "ZZ", "items": []})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        fields = {e["field"] for e in body["errors"]}
        assert fields == {"name", "province"}

    def test_guest_budget_flow(self, client):
        created = client.post("/api/budgets", json=SALARY_BUDGET)
        assert created.status_code == 201
        guest_id = created.headers[main.GUEST_SESSION_HEADER]
        assert created.json()["guest_session_id"] == guest_id
        budget_id = created.json()["budget"]["id"]
        assert len(created.json()["budget"]["items"]) == 2

        guest = {main.GUEST_SESSION_HEADER: guest_id}
        assert len(client.get("/api/budgets", headers=guest).json()["budgets"]) == 1
        assert client.get("/api/budgets").json()["budgets"] == []
        assert client.get(f"/api/budgets/{budget_id}", headers={main.GUEST_SESSION_HEADER: "other"}).status_code == 404

        signup = sign_up(client, headers=guest)
        assert signup["claimed_budgets"] == 1

        owned = client.get("/api/budgets", headers=auth(signup["token"])).json()["budgets"]
        assert [b["id"] for b in owned] == [budget_id]
        assert client.get("/api/budgets", headers=guest).json()["budgets"] == []

    def test_claim_endpoint(self, client, user_headers):
        guest_id = client.post("/api/budgets", json=SALARY_BUDGET).headers[main.GUEST_SESSION_HEADER]

        response = client.post(
            "/api/auth/claim-guest-budgets",
            headers={**user_headers, main.GUEST_SESSION_HEADER: guest_id},
        )
        assert response.json() == {"success": True, "claimed": 1}

    def test_second_claim_moves_nothing(self, client, user_headers):
        guest_id = client.post("/api/budgets", json=SALARY_BUDGET).headers[main.GUEST_SESSION_HEADER]
        client.post(
            "/api/auth/claim-guest-budgets",
            headers={**user_headers, main.GUEST_SESSION_HEADER: guest_id},
        )

        other = sign_up(client, email="sam@example.com")
        again = client.post(
            "/api/auth/claim-guest-budgets",
            headers={**auth(other["token"]), main.GUEST_SESSION_HEADER: guest_id},
        )
        assert again.json() == {"success": True, "claimed": 0}
        assert database.claim_guest_budgets(guest_id, other["user"]["id"]) == 0

        assert len(client.get("/api/budgets", headers=user_headers).json()["budgets"]) == 1
        assert client.get("/api/budgets", headers=auth(other["token"])).json()["budgets"] == []

    def test_update_and_delete(self, client, user_headers):
        budget_id = client.post("/api/budgets", json=SALARY_BUDGET, headers=user_headers).json()["budget"]["id"]

        changed = {**SALARY_BUDGET, "name": "Renamed", "items": SALARY_BUDGET["items"][:1]}
        updated = client.put(f"/api/budgets/{budget_id}", json=changed, headers=user_headers)
        assert updated.status_code == 200
        assert updated.json()["budget"]["name"] == "Renamed"
        assert len(updated.json()["budget"]["items"]) == 1
        assert updated.json()["summary"]["total_expenses"] == 0

        assert client.delete(f"/api/budgets/{budget_id}", headers=user_headers).json()["success"]
        assert client.get(f"/api/budgets/{budget_id}", headers=user_headers).status_code == 404

    def test_recommendations(self, client, user_headers):
        budget_id = client.post("/api/budgets", json=SALARY_BUDGET, headers=user_headers).json()["budget"]["id"]

        report = client.get(f"/api/budgets/{budget_id}/recommendations", headers=user_headers).json()
        assert report["budget_id"] == budget_id
        titles = [r["title"] for r in report["recommendations"]]
        assert "Open a First Home Savings Account" in titles


# =============================================================================
# NET WORTH & DEBTS
# =============================================================================

class TestNetWorth:

    def test_asset_crud_is_scoped_to_owner(self, client, user_headers):
        created = client.post(
            "/api/assets", json={"type": "savings", "name": "HISA", "value": 6000}, headers=user_headers
        )
        assert created.status_code == 201
        asset_id = created.json()["id"]

        updated = client.put(
            f"/api/assets/{asset_id}", json={"type": "savings", "name": "HISA", "value": 7000}, headers=user_headers
        )
        assert updated.json()["value"] == 7000

        other = auth(sign_up(client, email="sam@example.com")["token"])
        assert client.get(f"/api/assets/{asset_id}", headers=other).status_code == 404
        assert client.delete(f"/api/assets/{asset_id}", headers=other).status_code == 404

        assert client.delete(f"/api/assets/{asset_id}", headers=user_headers).json()["success"]
        assert client.get("/api/assets", headers=user_headers).json()["assets"] == []

    def test_negative_asset_rejected(self, client, user_headers):
        response = client.post("/api/assets", json={"type": "home", "name": "House", "value": -1}, headers=user_headers)
        assert response.status_code == 422

    def test_net_worth_summary(self, client, user_headers):
        client.post("/api/assets", json={"type": "savings", "name": "HISA", "value": 6000}, headers=user_headers)
        client.post("/api/assets", json={"type": "home", "name": "House", "value": 400000}, headers=user_headers)
        client.post(
            "/api/liabilities",
            json={"type": "mortgage", "name": "Mortgage", "balance": 300000, "interest_rate": 4.5,
                  "minimum_payment": 1800, "amortization_years": 25, "renewal_date": "2028-06-01"},
            headers=user_headers,
        )

        summary = client.get("/api/net-worth", headers=user_headers).json()
        assert summary["net_worth"] == 106000
        assert summary["debt_to_income_ratio"] is None
        assert summary["health_status"] == "healthy"

        liabilities = client.get("/api/liabilities", headers=user_headers).json()["liabilities"]
        assert liabilities[0]["renewal_date"] == "2028-06-01"


class TestDebts:

    def test_debt_lifecycle(self, client, user_headers):
        created = client.post(
            "/api/debts",
            json={"kind": "CreditCard", "name": "Visa", "balance": 5000, "interest_rate": 19.99, "limit": 10000},
            headers=user_headers,
        )
        assert created.status_code == 201
        debt = created.json()["debt"]
        assert debt["min_payment"] == 150.0
        assert debt["utilization"] == 50.0

        # Debts are stored as liabilities
        liabilities = client.get("/api/liabilities", headers=user_headers).json()["liabilities"]
        assert liabilities[0]["type"] == "credit_card"

        updated = client.put(
            f"/api/debts/{debt['id']}",
            json={"kind": "CreditCard", "name": "Visa", "balance": 4000, "interest_rate": 19.99,
                  "limit": 10000, "user_payment": 300},
            headers=user_headers,
        )
        assert updated.json()["debt"]["actual_payment"] == 300

        assert client.delete(f"/api/debts/{debt['id']}", headers=user_headers).json()["success"]
        assert client.get("/api/debts", headers=user_headers).json()["debts"] == []

    def test_invalid_debt(self, client, user_headers):
        response = client.post(
            "/api/debts",
            json={"kind": "LOC", "name": "LOC", "balance": 1000, "interest_rate": 8},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["message"] == "Credit limit is required for this debt type"

    def test_mortgage_is_not_a_debt(self, client, user_headers):
        mortgage = client.post(
            "/api/liabilities",
            json={"type": "mortgage", "name": "Mortgage", "balance": 300000, "interest_rate": 4.5},
            headers=user_headers,
        ).json()

        assert client.get("/api/debts", headers=user_headers).json()["debts"] == []
        response = client.get(f"/api/debts/{mortgage['id']}", headers=user_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Debt not found"

    def test_summary_and_payoff_plan(self, client, user_headers):
        for debt in (
            {"kind": "CreditCard", "name": "Visa", "balance": 2000, "interest_rate": 19.99, "limit": 5000},
            {"kind": "PersonalLoan", "name": "Car", "balance": 8000, "interest_rate": 6.9, "term": 48},
        ):
            assert client.post("/api/debts", json=debt, headers=user_headers).status_code == 201

        summary = client.get("/api/debts/summary", headers=user_headers).json()
        assert summary["debt_count"] == 2
        assert summary["total_balance"] == 10000

        plan = client.post(
            "/api/debts/payoff-plan", json={"strategy": "snowball", "extra_payment": 100}, headers=user_headers
        ).json()
        assert plan["strategy"] == "snowball"
        assert plan["feasible"]
        assert plan["debts"][0]["name"] == "Visa"


# =============================================================================
# CALCULATORS
# =============================================================================

class TestCalculatorEndpoints:

    def test_tax(self, client):
        body = client.post("/api/calculators/tax", json={"income": 50000, "province": "ON"}).json()
        assert body["total_tax"] == pytest.approx(6961.93, abs=0.05)
        assert body["cpp_contribution"] == pytest.approx(2766.75, abs=0.01)

    def test_tax_bad_province(self, client):
        response = client.post("/api/calculators/tax", json={"income": 50000, "province": "XX"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Please select a valid province"}

    def test_out_of_range_input(self, client):
        response = client.post(
            "/api/calculators/loan-payment", json={"principal": 1000, "interest_rate": 60, "term_years": 1}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Interest rate must be between 0 and 50"

    def test_mortgage_and_affordability(self, client):
        mortgage = client.post(
            "/api/calculators/mortgage", json={"home_price": 500000, "down_payment": 25000, "interest_rate": 5}
        ).json()
        assert mortgage["cmhc_premium"] == pytest.approx(19000)

        affordability = client.post(
            "/api/calculators/home-affordability",
            json={"gross_income": 500000, "down_payment": 10000, "interest_rate": 4},
        ).json()
        assert affordability["limiting_factor"] == "down_payment"

    def test_remaining_calculators(self, client):
        payoff = client.post(
            "/api/calculators/loan-payoff",
            json={"balance": 1000, "interest_rate": 0, "monthly_payment": 100, "extra_payment": 100},
        ).json()
        assert payoff["months_saved"] == 5

        rent = client.post(
            "/api/calculators/buy-vs-rent",
            json={"home_price": 600000, "down_payment": 120000, "mortgage_rate": 5, "monthly_rent": 2500},
        ).json()
        assert rent["recommendation"] in ("buy", "rent")

        rrsp = client.post(
            "/api/calculators/rrsp-tfsa",
            json={"age": 35, "current_income": 90000, "contribution_amount": 5000,
                  "current_marginal_tax_rate": 45, "expected_retirement_tax_rate": 20},
        ).json()
        assert rrsp["recommendation"] == "RRSP"

    def test_export_unsaved(self, client):
        response = client.post(
            "/api/calculators/export",
            json={"calculator_type": "loan_payment", "title": "Car loan",
                  "inputs": {"principal": 12000}, "results": {"payment": 1000}},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="loan_payment-' in response.headers["content-disposition"]
        assert "Calculator Type,Loan Payment" in response.text

    def test_saved_results(self, client, user_headers):
        saved = client.post(
            "/api/calculator-results",
            json={"calculator_type": "mortgage", "title": "Condo", "inputs": {"home_price": 500000},
                  "results": {"payment": 2900}, "notes": "Ask about prepayment"},
            headers=user_headers,
        )
        assert saved.status_code == 201
        result_id = saved.json()["id"]

        assert len(client.get("/api/calculator-results?calculator_type=mortgage", headers=user_headers)
                   .json()["results"]) == 1
        assert client.get("/api/calculator-results?calculator_type=tax", headers=user_headers).json()["results"] == []

        export = client.get(f"/api/calculator-results/{result_id}/export", headers=user_headers)
        assert "Title,Condo" in export.text
        assert "Ask about prepayment" in export.text

        assert client.delete(f"/api/calculator-results/{result_id}", headers=user_headers).json()["success"]
        assert client.delete(f"/api/calculator-results/{result_id}", headers=user_headers).status_code == 404

    def test_blank_title_rejected(self, client, user_headers):
        response = client.post(
            "/api/calculator-results",
            json={"calculator_type": "tax", "title": "   ", "inputs": {}, "results": {}},
            headers=user_headers,
        )
        assert response.status_code == 422


# =============================================================================
# AI COACH
# =============================================================================

class TestCoachEndpoints:

    def test_chat_requires_message(self, client, user_headers):
        response = client.post("/api/ai-coach/chat", json={"message": "  "}, headers=user_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Message is required"

    def test_chat_mock_mode(self, client, user_headers):
        client.post("/api/budgets", json=SALARY_BUDGET, headers=user_headers)
        response = client.post(
            "/api/ai-coach/chat", json={"message": "Should I open a TFSA?"}, headers=user_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "mock"
        assert "offline mode" in body["message"]

    def test_audit_is_scored_and_saved(self, client, user_headers):
        client.post("/api/budgets", json=SALARY_BUDGET, headers=user_headers)
        client.post(
            "/api/debts",
            json={"kind": "CreditCard", "name": "Visa", "balance": 5000, "interest_rate": 19.99, "limit": 6000},
            headers=user_headers,
        )

        response = client.post("/api/ai-coach/audit", headers=user_headers)
        assert response.status_code == 201
        report = response.json()["report"]
        assert 0 <= report["score"] <= 10
        assert report["action_plan"]
        assert report["follow_up_date"]

        audits = client.get("/api/ai-coach/audit", headers=user_headers).json()["audits"]
        assert len(audits) == 1
        assert audits[0]["id"] == response.json()["audit_id"]
        assert audits[0]["score"] == report["score"]


# =============================================================================
# REFERENCE DATA
# =============================================================================

class TestReference:

    def test_brackets_for_province(self, client):
        body = client.get("/api/reference/brackets?province=on").json()
        assert body["province"] == "ON"
        assert body["province_name"] == "Ontario"
        assert body["brackets"][-1]["limit"] == "unlimited"

    def test_all_brackets(self, client):
        body = client.get("/api/reference/brackets").json()
        assert len(body["provinces"]) == 13
        assert body["federal"]["basic_personal_amount"] == 16129

    def test_invalid_province(self, client):
        assert client.get("/api/reference/brackets?province=zz").status_code == 400

    def test_limits(self, client):
        body = client.get("/api/reference/limits").json()
        assert "tfsa_annual_limit" in body["registered_accounts"]
        assert body["mortgage"]["gds_limit"] == 0.39
