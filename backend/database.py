"""
SmartBudget Canada - Persistence
================================
SQLAlchemy Core tables and the queries the API needs.

Every query that touches user data is scoped to its owner: a user id
for signed-in users, or a guest session id for budgets created before
sign-in. Rows come back as plain dicts.
"""

import os
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import bcrypt
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from models import (
    AssetInput,
    AuditReport,
    BudgetInput,
    BudgetSummary,
    CalculatorResultCreate,
    FinancialSnapshot,
    LiabilityInput,
)

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./smartbudget.db"

metadata = MetaData()


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# TABLES
# =============================================================================

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("email", String(255), unique=True, nullable=False),
    Column("name", String(255)),
    Column("hashed_password", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
)

sessions = Table(
    "sessions",
    metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("expires_at", DateTime, nullable=False),
)

budgets = Table(
    "budgets",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True),
    Column("guest_session_id", String(64), index=True),
    Column("name", String(255), nullable=False),
    Column("province", String(2), nullable=False),
    Column("life_situation", String(20), nullable=False),
    Column("age_range", String(50)),
    Column("work_status", String(50)),
    Column("housing_situation", String(50)),
    Column("primary_goal", String(50)),
    Column("gross_income", Float, nullable=False, default=0.0),
    Column("net_income", Float, nullable=False, default=0.0),
    Column("total_expenses", Float, nullable=False, default=0.0),
    Column("disposable_income", Float, nullable=False, default=0.0),
    Column("total_tax", Float, nullable=False, default=0.0),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
)

budget_items = Table(
    "budget_items",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("budget_id", String(36), ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("type", String(10), nullable=False),
    Column("category", String(100), nullable=False),
    Column("subcategory", String(100)),
    Column("name", String(255), nullable=False),
    Column("amount", Float, nullable=False),
    Column("frequency", String(20), nullable=False),
    Column("monthly_amount", Float, nullable=False),
    Column("owner", String(100)),
    Column("position", Integer, nullable=False, default=0),
)

assets = Table(
    "assets",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("name", String(255), nullable=False),
    Column("value", Float, nullable=False),
    Column("description", Text),
    Column("details", JSON),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
)

liabilities = Table(
    "liabilities",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("name", String(255), nullable=False),
    Column("balance", Float, nullable=False),
    Column("interest_rate", Float),
    Column("minimum_payment", Float),
    Column("credit_limit", Float),
    Column("description", Text),
    Column("details", JSON),
    Column("amortization_years", Integer),
    Column("renewal_date", Date),
    Column("maturity_date", Date),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
    Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
)

calculator_results = Table(
    "calculator_results",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("calculator_type", String(30), nullable=False),
    Column("title", String(255), nullable=False),
    Column("inputs", JSON, nullable=False),
    Column("results", JSON, nullable=False),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
)

financial_audits = Table(
    "financial_audits",
    metadata,
    Column("id", String(36), primary_key=True, default=_new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("score", Integer, nullable=False),
    Column("severity", String(20), nullable=False),
    Column("audit_data", JSON, nullable=False),
    Column("report", JSON, nullable=False),
    Column("follow_up_date", Date),
    Column("completed", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
)


# =============================================================================
# ENGINE
# =============================================================================

_engine: Optional[Engine] = None


def configure(database_url: Optional[str] = None) -> Engine:
    """Create the engine for a URL (defaults to DATABASE_URL)."""
    global _engine
    url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    _engine = create_engine(url, connect_args=connect_args)
    logger.info(f"Database configured: {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        configure()
    return _engine


def init_db() -> None:
    metadata.create_all(get_engine())


class DuplicateEmailError(Exception):
    """Raised when signing up with an email that already has an account."""


# =============================================================================
# USERS & SESSIONS
# =============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def _public_user(row) -> Dict[str, Any]:
    return {"id": row["id"], "email": row["email"], "name": row["name"], "created_at": row["created_at"]}


def create_user(email: str, password: str, name: Optional[str] = None) -> Dict[str, Any]:
    user_id = _new_id()
    stmt = insert(users).values(
        id=user_id,
        email=email.strip().lower(),
        name=name,
        hashed_password=hash_password(password),
    )
    try:
        with get_engine().begin() as conn:
            conn.execute(stmt)
            row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    except IntegrityError as exc:
        raise DuplicateEmailError(email) from exc
    return _public_user(row)


def authenticate_user(email: str, password: str) -> Optional[Dict[str, Any]]:
    with get_engine().begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email.strip().lower())).mappings().first()
    if not row or not verify_password(password, row["hashed_password"]):
        return None
    return _public_user(row)


def create_session(user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    ttl_hours = int(os.getenv("SESSION_TTL_HOURS", "720"))
    with get_engine().begin() as conn:
        conn.execute(insert(sessions).values(
            token=token,
            user_id=user_id,
            expires_at=datetime.utcnow() + timedelta(hours=ttl_hours),
        ))
    return token


def get_user_by_token(token: str) -> Optional[Dict[str, Any]]:
    stmt = (
        select(users)
        .join(sessions, sessions.c.user_id == users.c.id)
        .where(and_(sessions.c.token == token, sessions.c.expires_at > datetime.utcnow()))
    )
    with get_engine().begin() as conn:
        row = conn.execute(stmt).mappings().first()
    return _public_user(row) if row else None


def delete_session(token: str) -> None:
    with get_engine().begin() as conn:
        conn.execute(delete(sessions).where(sessions.c.token == token))


# =============================================================================
# BUDGETS
# =============================================================================

def _budget_owner_clause(user_id: Optional[str], guest_session_id: Optional[str]):
    if user_id:
        return budgets.c.user_id == user_id
    if guest_session_id:
        return and_(budgets.c.guest_session_id == guest_session_id, budgets.c.user_id.is_(None))
    return None


def _budget_values(budget: BudgetInput, summary: BudgetSummary) -> Dict[str, Any]:
    return {
        "name": budget.name.strip(),
        "province": summary.province,
        "life_situation": budget.life_situation.value,
        "age_range": budget.age_range,
        "work_status": budget.work_status,
        "housing_situation": budget.housing_situation,
        "primary_goal": budget.primary_goal,
        "gross_income": summary.gross_income,
        "net_income": summary.net_income,
        "total_expenses": summary.total_expenses,
        "disposable_income": summary.disposable_income,
        "total_tax": summary.total_tax,
    }


def _insert_items(conn, budget_id: str, budget: BudgetInput) -> None:
    rows = [
        {
            "id": _new_id(),
            "budget_id": budget_id,
            "type": item.type.value,
            "category": item.category,
            "subcategory": item.subcategory,
            "name": item.name.strip(),
            "amount": item.amount,
            "frequency": item.frequency.value,
            "monthly_amount": item.monthly_amount,
            "owner": item.owner.strip() if item.owner else None,
            "position": position,
        }
        for position, item in enumerate(budget.items)
    ]
    if rows:
        conn.execute(insert(budget_items), rows)


def _load_budget(conn, row) -> Dict[str, Any]:
    budget = dict(row)
    items = conn.execute(
        select(budget_items)
        .where(budget_items.c.budget_id == row["id"])
        .order_by(budget_items.c.position)
    ).mappings().all()
    budget["items"] = [
        {k: v for k, v in dict(item).items() if k not in ("budget_id", "position")}
        for item in items
    ]
    return budget


def create_budget(
    budget: BudgetInput,
    summary: BudgetSummary,
    user_id: Optional[str] = None,
    guest_session_id: Optional[str] = None
) -> Dict[str, Any]:
    if not user_id and not guest_session_id:
        raise ValueError("A budget needs a user or a guest session")

    budget_id = _new_id()
    values = _budget_values(budget, summary)
    with get_engine().begin() as conn:
        conn.execute(insert(budgets).values(
            id=budget_id,
            user_id=user_id,
            guest_session_id=None if user_id else guest_session_id,
            **values,
        ))
        _insert_items(conn, budget_id, budget)
        row = conn.execute(select(budgets).where(budgets.c.id == budget_id)).mappings().first()
        return _load_budget(conn, row)


def list_budgets(user_id: Optional[str] = None, guest_session_id: Optional[str] = None) -> List[Dict[str, Any]]:
    clause = _budget_owner_clause(user_id, guest_session_id)
    if clause is None:
        return []
    with get_engine().begin() as conn:
        rows = conn.execute(
            select(budgets).where(clause).order_by(budgets.c.created_at.desc())
        ).mappings().all()
        return [_load_budget(conn, row) for row in rows]


def get_budget(
    budget_id: str,
    user_id: Optional[str] = None,
    guest_session_id: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    clause = _budget_owner_clause(user_id, guest_session_id)
    if clause is None:
        return None
    with get_engine().begin() as conn:
        row = conn.execute(
            select(budgets).where(and_(budgets.c.id == budget_id, clause))
        ).mappings().first()
        return _load_budget(conn, row) if row else None


def get_latest_budget(user_id: str) -> Optional[Dict[str, Any]]:
    found = list_budgets(user_id=user_id)
    return found[0] if found else None


def update_budget(
    budget_id: str,
    budget: BudgetInput,
    summary: BudgetSummary,
    user_id: Optional[str] = None,
    guest_session_id: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """Replace a budget's fields and items. Returns None if not owned."""
    clause = _budget_owner_clause(user_id, guest_session_id)
    if clause is None:
        return None
    with get_engine().begin() as conn:
        result = conn.execute(
            update(budgets)
            .where(and_(budgets.c.id == budget_id, clause))
            .values(updated_at=datetime.utcnow(), **_budget_values(budget, summary))
        )
        if result.rowcount == 0:
            return None
        conn.execute(delete(budget_items).where(budget_items.c.budget_id == budget_id))
        _insert_items(conn, budget_id, budget)
        row = conn.execute(select(budgets).where(budgets.c.id == budget_id)).mappings().first()
        return _load_budget(conn, row)


def delete_budget(
    budget_id: str,
    user_id: Optional[str] = None,
    guest_session_id: Optional[str] = None
) -> bool:
    clause = _budget_owner_clause(user_id, guest_session_id)
    if clause is None:
        return False
    with get_engine().begin() as conn:
        owned = conn.execute(
            select(budgets.c.id).where(and_(budgets.c.id == budget_id, clause))
        ).first()
        if not owned:
            return False
        conn.execute(delete(budget_items).where(budget_items.c.budget_id == budget_id))
        conn.execute(delete(budgets).where(budgets.c.id == budget_id))
    return True


def claim_guest_budgets(guest_session_id: str, user_id: str) -> int:
    """Attach every unowned budget from a guest session to a user."""
    with get_engine().begin() as conn:
        result = conn.execute(
            update(budgets)
            .where(and_(budgets.c.guest_session_id == guest_session_id, budgets.c.user_id.is_(None)))
            .values(user_id=user_id, guest_session_id=None, updated_at=datetime.utcnow())
        )
    count = result.rowcount or 0
    if count:
        logger.info(f"Claimed {count} guest budget(s) for user {user_id}")
    return count


# =============================================================================
# USER-OWNED RECORDS (assets, liabilities, calculator results, audits)
# =============================================================================

def _insert_owned(table: Table, user_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
    record_id = _new_id()
    with get_engine().begin() as conn:
        conn.execute(insert(table).values(id=record_id, user_id=user_id, **values))
        row = conn.execute(select(table).where(table.c.id == record_id)).mappings().first()
    return dict(row)


def _list_owned(table: Table, user_id: str, *filters) -> List[Dict[str, Any]]:
    stmt = select(table).where(and_(table.c.user_id == user_id, *filters)).order_by(table.c.created_at.desc())
    with get_engine().begin() as conn:
        return [dict(row) for row in conn.execute(stmt).mappings().all()]


def _get_owned(table: Table, record_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    with get_engine().begin() as conn:
        row = conn.execute(
            select(table).where(and_(table.c.id == record_id, table.c.user_id == user_id))
        ).mappings().first()
    return dict(row) if row else None


def _update_owned(table: Table, record_id: str, user_id: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    with get_engine().begin() as conn:
        result = conn.execute(
            update(table)
            .where(and_(table.c.id == record_id, table.c.user_id == user_id))
            .values(updated_at=datetime.utcnow(), **values)
        )
        if result.rowcount == 0:
            return None
        row = conn.execute(select(table).where(table.c.id == record_id)).mappings().first()
    return dict(row)


def _delete_owned(table: Table, record_id: str, user_id: str) -> bool:
    with get_engine().begin() as conn:
        result = conn.execute(
            delete(table).where(and_(table.c.id == record_id, table.c.user_id == user_id))
        )
    return (result.rowcount or 0) > 0


# Assets

def create_asset(user_id: str, asset: AssetInput) -> Dict[str, Any]:
    return _insert_owned(assets, user_id, asset.model_dump(mode="json"))


def list_assets(user_id: str) -> List[Dict[str, Any]]:
    return _list_owned(assets, user_id)


def get_asset(asset_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    return _get_owned(assets, asset_id, user_id)


def update_asset(asset_id: str, user_id: str, asset: AssetInput) -> Optional[Dict[str, Any]]:
    return _update_owned(assets, asset_id, user_id, asset.model_dump(mode="json"))


def delete_asset(asset_id: str, user_id: str) -> bool:
    return _delete_owned(assets, asset_id, user_id)


# Liabilities (debts are liabilities with debt details)

def _liability_values(liability: LiabilityInput) -> Dict[str, Any]:
    values = liability.model_dump()
    values["type"] = liability.type.value
    return values


def create_liability(user_id: str, liability: LiabilityInput) -> Dict[str, Any]:
    return _insert_owned(liabilities, user_id, _liability_values(liability))


def list_liabilities(user_id: str) -> List[Dict[str, Any]]:
    return _list_owned(liabilities, user_id)


def get_liability(liability_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    return _get_owned(liabilities, liability_id, user_id)


def update_liability(liability_id: str, user_id: str, liability: LiabilityInput) -> Optional[Dict[str, Any]]:
    return _update_owned(liabilities, liability_id, user_id, _liability_values(liability))


def delete_liability(liability_id: str, user_id: str) -> bool:
    return _delete_owned(liabilities, liability_id, user_id)


# Calculator results

def save_calculator_result(user_id: str, result: CalculatorResultCreate) -> Dict[str, Any]:
    return _insert_owned(calculator_results, user_id, result.model_dump(mode="json"))


def list_calculator_results(user_id: str, calculator_type: Optional[str] = None) -> List[Dict[str, Any]]:
    if calculator_type:
        return _list_owned(calculator_results, user_id, calculator_results.c.calculator_type == calculator_type)
    return _list_owned(calculator_results, user_id)


def get_calculator_result(result_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    return _get_owned(calculator_results, result_id, user_id)


def delete_calculator_result(result_id: str, user_id: str) -> bool:
    return _delete_owned(calculator_results, result_id, user_id)


# Audits

def save_audit(user_id: str, report: AuditReport, snapshot: FinancialSnapshot) -> Dict[str, Any]:
    report_data = report.model_dump(mode="json")
    return _insert_owned(financial_audits, user_id, {
        "score": report.score,
        "severity": report.severity.value,
        "audit_data": snapshot.model_dump(mode="json"),
        "report": report_data,
        "follow_up_date": report.follow_up_date,
    })


def list_audits(user_id: str) -> List[Dict[str, Any]]:
    return _list_owned(financial_audits, user_id)

