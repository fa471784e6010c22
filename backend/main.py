"""
SmartBudget Canada - FastAPI Backend
====================================
Main API server for budgeting, net worth, debts, calculators and the
AI financial coach.

Architecture:
1. All money math (tax, payments, scores) runs locally in Python
2. The LLM only explains results, and only sees redacted text plus a
   snapshot with no name or email
3. Budgets work before sign-in through the X-Guest-Session header and
   can be claimed by an account later
"""

import os
import uuid
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any, List
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Header, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

import database
from tax_constants import (
    FEDERAL_TAX_BRACKETS_2025,
    PROVINCIAL_TAX_BRACKETS_2025,
    PROVINCE_NAMES,
    PAYROLL_CONTRIBUTIONS_2025,
    REGISTERED_ACCOUNT_LIMITS_2025,
    MORTGAGE_RULES,
    get_federal_basic_personal_amount,
    parse_province,
)
from models import (
    Asset,
    AssetInput,
    AuditReport,
    BudgetInput,
    BuyVsRentInputs,
    CalculatorExportRequest,
    CalculatorInputError,
    CalculatorResultCreate,
    CalculatorType,
    ChatRequest,
    DebtForm,
    FormValidationError,
    HomeAffordabilityInputs,
    Liability,
    LiabilityInput,
    LoanInputs,
    LoanPayoffInputs,
    MortgageInputs,
    PayoffPlanRequest,
    RRSPvsTFSAInputs,
    SignInRequest,
    SignUpRequest,
    TaxCalculatorInputs,
)
from tax_calculator import BudgetCalculator, calculate_tax, validate_budget
from debt_calculator import (
    build_payoff_plan,
    debt_to_liability,
    liability_to_debt,
    summarize_debts,
    validate_debt,
)
from calculators import (
    calculate_buy_vs_rent,
    calculate_home_affordability,
    calculate_loan_payment,
    calculate_loan_payoff,
    calculate_mortgage,
    calculate_rrsp_vs_tfsa,
    export_calculation_csv,
)
from net_worth import summarize_net_worth
from recommendation_engine import FinancialHealthScorer, RecommendationEngine, build_financial_snapshot
from llm_prompts import build_financial_context
from openai_client import CoachAIClient

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

GUEST_SESSION_HEADER = "X-Guest-Session"
AUDIT_FOLLOW_UP_DAYS = 30


# =============================================================================
# APPLICATION SETUP
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("SmartBudget Canada starting up...")
    database.init_db()
    yield
    logger.info("SmartBudget Canada shutting down...")


app = FastAPI(
    title="SmartBudget Canada",
    description="Canadian personal budgeting and financial planning API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("FRONTEND_ORIGINS", "http://localhost:3000,http://localhost:8501").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[GUEST_SESSION_HEADER],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def get_optional_user(authorization: Optional[str] = Header(None)) -> Optional[Dict[str, Any]]:
    token = _bearer_token(authorization)
    return database.get_user_by_token(token) if token else None


def get_current_user(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def get_guest_session(
    guest_session: Optional[str] = Header(None, alias=GUEST_SESSION_HEADER)
) -> Optional[str]:
    return guest_session.strip() if guest_session and guest_session.strip() else None


def get_coach_client() -> CoachAIClient:
    return CoachAIClient()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

budget_calculator = BudgetCalculator()
recommendation_engine = RecommendationEngine()
health_scorer = FinancialHealthScorer()


def summarize_budget(budget: BudgetInput):
    validate_budget(budget)
    return budget_calculator.summarize(budget.items, budget.province, budget.life_situation)


def budget_input_from_row(row: Dict[str, Any]) -> BudgetInput:
    return BudgetInput.model_validate({**row, "items": row.get("items", [])})


def load_assets(user_id: str) -> List[Asset]:
    return [Asset(**row) for row in database.list_assets(user_id)]


def load_liabilities(user_id: str) -> List[Liability]:
    return [Liability(**row) for row in database.list_liabilities(user_id)]


def load_debt_liability(debt_id: str, user_id: str) -> Liability:
    row = database.get_liability(debt_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Debt not found")
    liability = Liability(**row)
    if liability_to_debt(liability) is None:
        raise HTTPException(status_code=404, detail="Debt not found")
    return liability


def load_debts(user_id: str):
    debts = []
    for liability in load_liabilities(user_id):
        debt = liability_to_debt(liability)
        if debt is not None:
            debts.append(debt)
    return debts


def snapshot_for_user(user_id: str):
    return build_financial_snapshot(
        database.get_latest_budget(user_id),
        load_assets(user_id),
        load_liabilities(user_id),
    )


def bracket_table(brackets) -> List[Dict[str, Any]]:
    return [
        {"limit": limit if limit != float('inf') else "unlimited", "rate": rate}
        for limit, rate in brackets
    ]


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/")
async def root():
    """API health check."""
    return {
        "service": "SmartBudget Canada",
        "version": "1.0.0",
        "status": "healthy",
        "privacy_mode": "enabled"
    }


@app.get("/api/health")
def health_check(coach: CoachAIClient = Depends(get_coach_client)):
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "components": {
            "database": "ready",
            "pii_redaction": "ready",
            "tax_calculator": "ready",
            "llm_integration": "connected" if coach.is_connected else "mock_mode"
        }
    }


# --- AUTH ---

@app.post("/api/auth/signup", status_code=201)
def sign_up(
    request: SignUpRequest,
    guest_session: Optional[str] = Depends(get_guest_session)
):
    """Create an account and sign in. Guest budgets are claimed when the header is sent."""
    try:
        user = database.create_user(request.email, request.password, request.name)
    except database.DuplicateEmailError:
        raise HTTPException(status_code=409, detail="Email already exists.")

    token = database.create_session(user["id"])
    claimed = database.claim_guest_budgets(guest_session, user["id"]) if guest_session else 0
    logger.info(f"User {user['id']} signed up")
    return {"success": True, "user": user, "token": token, "claimed_budgets": claimed}


@app.post("/api/auth/signin")
def sign_in(
    request: SignInRequest,
    guest_session: Optional[str] = Depends(get_guest_session)
):
    user = database.authenticate_user(request.email, request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = database.create_session(user["id"])
    claimed = database.claim_guest_budgets(guest_session, user["id"]) if guest_session else 0
    return {"success": True, "user": user, "token": token, "claimed_budgets": claimed}


@app.post("/api/auth/signout")
def sign_out(authorization: Optional[str] = Header(None)):
    token = _bearer_token(authorization)
    if token:
        database.delete_session(token)
    return {"success": True}


@app.get("/api/auth/me")
def who_am_i(user: Dict[str, Any] = Depends(get_current_user)):
    return {"user": user}


@app.post("/api/auth/claim-guest-budgets")
def claim_guest_budgets(
    user: Dict[str, Any] = Depends(get_current_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    """Move budgets made before sign-in onto the account."""
    if not guest_session:
        return {"success": True, "claimed": 0}
    claimed = database.claim_guest_budgets(guest_session, user["id"])
    return {"success": True, "claimed": claimed}


# --- BUDGETS ---

@app.post("/api/budgets/preview")
def preview_budget(budget: BudgetInput):
    """
    Calculate a budget's totals without saving it.

    Tax and payroll deductions are computed locally, per partner for couples.
    """
    summary = summarize_budget(budget)
    return {"success": True, "summary": summary.model_dump()}


@app.get("/api/budgets")
def list_budgets(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    budgets = database.list_budgets(user_id=user["id"] if user else None, guest_session_id=guest_session)
    return {"budgets": budgets}


@app.post("/api/budgets", status_code=201)
def create_budget(
    budget: BudgetInput,
    response: Response,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    summary = summarize_budget(budget)

    user_id = user["id"] if user else None
    if not user_id and not guest_session:
        guest_session = uuid.uuid4().hex

    saved = database.create_budget(budget, summary, user_id=user_id, guest_session_id=guest_session)
    logger.info(f"Budget {saved['id']} created ({len(budget.items)} items)")

    result = {"success": True, "budget": saved, "summary": summary.model_dump()}
    if not user_id:
        response.headers[GUEST_SESSION_HEADER] = guest_session
        result["guest_session_id"] = guest_session
    return result


@app.get("/api/budgets/{budget_id}")
def get_budget(
    budget_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    budget = database.get_budget(budget_id, user_id=user["id"] if user else None, guest_session_id=guest_session)
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")

    summary = summarize_budget(budget_input_from_row(budget))
    return {"budget": budget, "summary": summary.model_dump()}


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: str,
    budget: BudgetInput,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    summary = summarize_budget(budget)
    saved = database.update_budget(
        budget_id, budget, summary,
        user_id=user["id"] if user else None,
        guest_session_id=guest_session
    )
    if not saved:
        raise HTTPException(status_code=404, detail="Budget not found")
    return {"success": True, "budget": saved, "summary": summary.model_dump()}


@app.delete("/api/budgets/{budget_id}")
def delete_budget(
    budget_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    deleted = database.delete_budget(
        budget_id,
        user_id=user["id"] if user else None,
        guest_session_id=guest_session
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="Budget not found")
    return {"success": True}


@app.get("/api/budgets/{budget_id}/recommendations")
def get_budget_recommendations(
    budget_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    guest_session: Optional[str] = Depends(get_guest_session)
):
    """Prioritized recommendations for a saved budget."""
    user_id = user["id"] if user else None
    budget = database.get_budget(budget_id, user_id=user_id, guest_session_id=guest_session)
    if not budget:
        raise HTTPException(status_code=404, detail="Budget not found")

    summary = summarize_budget(budget_input_from_row(budget))
    report = recommendation_engine.generate(
        summary,
        primary_goal=budget.get("primary_goal"),
        assets=load_assets(user_id) if user_id else [],
        liabilities=load_liabilities(user_id) if user_id else [],
        budget_id=budget_id,
    )
    return report.model_dump()


# --- ASSETS & LIABILITIES ---

@app.get("/api/assets")
def list_assets(user: Dict[str, Any] = Depends(get_current_user)):
    return {"assets": database.list_assets(user["id"])}


@app.post("/api/assets", status_code=201)
def create_asset(asset: AssetInput, user: Dict[str, Any] = Depends(get_current_user)):
    return database.create_asset(user["id"], asset)


@app.get("/api/assets/{asset_id}")
def get_asset(asset_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    asset = database.get_asset(asset_id, user["id"])
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


@app.put("/api/assets/{asset_id}")
def update_asset(asset_id: str, asset: AssetInput, user: Dict[str, Any] = Depends(get_current_user)):
    saved = database.update_asset(asset_id, user["id"], asset)
    if not saved:
        raise HTTPException(status_code=404, detail="Asset not found")
    return saved


@app.delete("/api/assets/{asset_id}")
def delete_asset(asset_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if not database.delete_asset(asset_id, user["id"]):
        raise HTTPException(status_code=404, detail="Asset not found")
    return {"success": True}


@app.get("/api/liabilities")
def list_liabilities(user: Dict[str, Any] = Depends(get_current_user)):
    return {"liabilities": database.list_liabilities(user["id"])}


@app.post("/api/liabilities", status_code=201)
def create_liability(liability: LiabilityInput, user: Dict[str, Any] = Depends(get_current_user)):
    return database.create_liability(user["id"], liability)


@app.get("/api/liabilities/{liability_id}")
def get_liability(liability_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    liability = database.get_liability(liability_id, user["id"])
    if not liability:
        raise HTTPException(status_code=404, detail="Liability not found")
    return liability


@app.put("/api/liabilities/{liability_id}")
def update_liability(
    liability_id: str,
    liability: LiabilityInput,
    user: Dict[str, Any] = Depends(get_current_user)
):
    saved = database.update_liability(liability_id, user["id"], liability)
    if not saved:
        raise HTTPException(status_code=404, detail="Liability not found")
    return saved


@app.delete("/api/liabilities/{liability_id}")
def delete_liability(liability_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if not database.delete_liability(liability_id, user["id"]):
        raise HTTPException(status_code=404, detail="Liability not found")
    return {"success": True}


@app.get("/api/net-worth")
def get_net_worth(user: Dict[str, Any] = Depends(get_current_user)):
    """Net worth with ratios against the latest budget, when there is one."""
    budget = database.get_latest_budget(user["id"])
    summary = summarize_net_worth(
        load_assets(user["id"]),
        load_liabilities(user["id"]),
        monthly_income=budget["gross_income"] if budget else None,
        monthly_expenses=budget["total_expenses"] if budget else None,
    )
    return summary.model_dump()


# --- DEBTS ---

@app.get("/api/debts/summary")
def get_debt_summary(user: Dict[str, Any] = Depends(get_current_user)):
    return summarize_debts(load_debts(user["id"])).model_dump()


@app.post("/api/debts/payoff-plan")
def get_payoff_plan(request: PayoffPlanRequest, user: Dict[str, Any] = Depends(get_current_user)):
    plan = build_payoff_plan(load_debts(user["id"]), request.strategy, request.extra_payment)
    return plan.model_dump()


@app.get("/api/debts")
def list_debts(user: Dict[str, Any] = Depends(get_current_user)):
    return {"debts": [d.model_dump() for d in load_debts(user["id"])]}


@app.post("/api/debts", status_code=201)
def create_debt(form: DebtForm, user: Dict[str, Any] = Depends(get_current_user)):
    """Validate a debt, compute its minimum payment and store it as a liability."""
    min_payment = validate_debt(form)
    row = database.create_liability(user["id"], debt_to_liability(form, min_payment))
    logger.info(f"Debt {row['id']} created ({form.kind.value})")
    return {"success": True, "debt": liability_to_debt(Liability(**row)).model_dump()}


@app.get("/api/debts/{debt_id}")
def get_debt(debt_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return liability_to_debt(load_debt_liability(debt_id, user["id"])).model_dump()


@app.put("/api/debts/{debt_id}")
def update_debt(debt_id: str, form: DebtForm, user: Dict[str, Any] = Depends(get_current_user)):
    load_debt_liability(debt_id, user["id"])
    min_payment = validate_debt(form)
    row = database.update_liability(debt_id, user["id"], debt_to_liability(form, min_payment))
    return {"success": True, "debt": liability_to_debt(Liability(**row)).model_dump()}


@app.delete("/api/debts/{debt_id}")
def delete_debt(debt_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    load_debt_liability(debt_id, user["id"])
    database.delete_liability(debt_id, user["id"])
    return {"success": True}


# --- CALCULATORS ---

@app.post("/api/calculators/tax")
def tax_calculator(inputs: TaxCalculatorInputs):
    """
    Calculate 2025 federal and provincial tax plus CPP/EI.

    This runs the ACTUAL tax calculation locally in Python.
    The LLM is NOT used for tax math.
    """
    try:
        province = parse_province(inputs.province)
    except ValueError:
        raise CalculatorInputError("Please select a valid province")
    return calculate_tax(inputs.income, province, inputs.rrsp_deduction).model_dump()


@app.post("/api/calculators/mortgage")
def mortgage_calculator(inputs: MortgageInputs):
    return calculate_mortgage(inputs).model_dump()


@app.post("/api/calculators/loan-payment")
def loan_payment_calculator(inputs: LoanInputs):
    return calculate_loan_payment(inputs).model_dump()


@app.post("/api/calculators/loan-payoff")
def loan_payoff_calculator(inputs: LoanPayoffInputs):
    return calculate_loan_payoff(inputs).model_dump()


@app.post("/api/calculators/home-affordability")
def home_affordability_calculator(inputs: HomeAffordabilityInputs):
    return calculate_home_affordability(inputs).model_dump()


@app.post("/api/calculators/buy-vs-rent")
def buy_vs_rent_calculator(inputs: BuyVsRentInputs):
    return calculate_buy_vs_rent(inputs).model_dump()


@app.post("/api/calculators/rrsp-tfsa")
def rrsp_tfsa_calculator(inputs: RRSPvsTFSAInputs):
    return calculate_rrsp_vs_tfsa(inputs).model_dump()


@app.post("/api/calculators/export")
def export_unsaved_calculation(request: CalculatorExportRequest):
    """CSV download of a calculation that was not saved."""
    content = export_calculation_csv(
        request.calculator_type, request.title, request.inputs, request.results, request.notes
    )
    return csv_response(content, request.calculator_type)


def csv_response(content: str, calculator_type: CalculatorType) -> PlainTextResponse:
    filename = f"{calculator_type.value}-{date.today().isoformat()}.csv"
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- SAVED CALCULATOR RESULTS ---

@app.get("/api/calculator-results")
def list_calculator_results(
    calculator_type: Optional[CalculatorType] = None,
    user: Dict[str, Any] = Depends(get_current_user)
):
    results = database.list_calculator_results(
        user["id"], calculator_type.value if calculator_type else None
    )
    return {"results": results}


@app.post("/api/calculator-results", status_code=201)
def save_calculator_result(result: CalculatorResultCreate, user: Dict[str, Any] = Depends(get_current_user)):
    return database.save_calculator_result(user["id"], result)


@app.delete("/api/calculator-results/{result_id}")
def delete_calculator_result(result_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if not database.delete_calculator_result(result_id, user["id"]):
        raise HTTPException(status_code=404, detail="Calculator result not found")
    return {"success": True}


@app.get("/api/calculator-results/{result_id}/export")
def export_calculator_result(result_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    saved = database.get_calculator_result(result_id, user["id"])
    if not saved:
        raise HTTPException(status_code=404, detail="Calculator result not found")

    calculator_type = CalculatorType(saved["calculator_type"])
    content = export_calculation_csv(
        calculator_type,
        saved["title"],
        saved["inputs"],
        saved["results"],
        saved.get("notes"),
        created=saved["created_at"].date(),
    )
    return csv_response(content, calculator_type)


# --- AI COACH ---

@app.post("/api/ai-coach/chat")
def coach_chat(
    request: ChatRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    coach: CoachAIClient = Depends(get_coach_client)
):
    """
    Ask the coach a question.

    The message is PII-redacted before it is sent, and the financial
    context is built from the user's own records only.
    """
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    context = None
    province = None
    if request.include_financial_data:
        snapshot = snapshot_for_user(user["id"])
        context = build_financial_context(snapshot)
        province = snapshot.province

    response = coach.chat(request.message, context=context, history=request.history, province=province)
    if not response.success:
        logger.error(f"Coach chat failed: {response.error}")
        raise HTTPException(status_code=502, detail="The AI coach is unavailable right now")

    return {
        "success": True,
        "message": response.content,
        "model": response.model,
        "provider": response.provider,
    }


@app.post("/api/ai-coach/audit", status_code=201)
def run_financial_audit(
    user: Dict[str, Any] = Depends(get_current_user),
    coach: CoachAIClient = Depends(get_coach_client)
):
    """
    Score the user's finances and ask the coach for the write-up.

    The score is computed here. The LLM only explains it.
    """
    snapshot = snapshot_for_user(user["id"])
    health = health_scorer.score(snapshot)

    response = coach.generate_audit(snapshot, health)
    if not response.success or not response.data:
        logger.error(f"Audit generation failed: {response.error}")
        raise HTTPException(status_code=502, detail=response.error or "Audit generation failed")

    data = response.data
    report = AuditReport(
        score=health.score,
        severity=health.severity,
        factors=health.factors,
        overall_assessment=data["overall_assessment"],
        immediate_reaction=data["immediate_reaction"],
        debt_analysis=data["debt_analysis"],
        action_plan=[str(step) for step in data["action_plan"]],
        coach_quotes=[str(quote) for quote in data.get("coach_quotes", [])],
        follow_up_date=date.today() + timedelta(days=AUDIT_FOLLOW_UP_DAYS),
    )
    saved = database.save_audit(user["id"], report, snapshot)
    logger.info(f"Audit {saved['id']} generated: {health.score}/10 ({health.severity.value})")

    return {"success": True, "audit_id": saved["id"], "report": report.model_dump()}


@app.get("/api/ai-coach/audit")
def list_financial_audits(user: Dict[str, Any] = Depends(get_current_user)):
    return {"audits": database.list_audits(user["id"])}


# --- REFERENCE DATA ---

@app.get("/api/reference/brackets")
async def get_tax_brackets(province: Optional[str] = None):
    """Get 2025 federal and provincial tax brackets."""
    federal = {
        "brackets": bracket_table(FEDERAL_TAX_BRACKETS_2025),
        "basic_personal_amount": get_federal_basic_personal_amount(0),
    }

    if province:
        try:
            prov = parse_province(province)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid province")
        return {
            "federal": federal,
            "province": prov.value,
            "province_name": PROVINCE_NAMES[prov],
            "brackets": bracket_table(PROVINCIAL_TAX_BRACKETS_2025[prov]),
        }

    return {
        "federal": federal,
        "provinces": {
            prov.value: bracket_table(brackets)
            for prov, brackets in PROVINCIAL_TAX_BRACKETS_2025.items()
        },
    }


@app.get("/api/reference/limits")
async def get_contribution_limits():
    """Get 2025 registered account limits, payroll maximums and mortgage rules."""
    return {
        "registered_accounts": REGISTERED_ACCOUNT_LIMITS_2025,
        "payroll": PAYROLL_CONTRIBUTIONS_2025,
        "mortgage": MORTGAGE_RULES,
    }


# --- ERROR HANDLERS ---

@app.exception_handler(FormValidationError)
async def form_validation_handler(request, exc: FormValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "errors": [e.model_dump() for e in exc.errors]}
    )


@app.exception_handler(CalculatorInputError)
async def calculator_input_handler(request, exc: CalculatorInputError):
    return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
