"""
OpenAI Integration for SmartBudget Canada
=========================================
Powers the AI financial coach: free-form chat and the structured
financial audit.

Falls back to canned mock responses when no API key is configured, so
the app and its tests run offline.

IMPORTANT: User messages pass through the PII redactor before they are sent,
and the financial snapshot never contains a name or email.
"""

import os
import json
import logging
from typing import Optional, Dict, Any, List
from dataclasses import dataclass
from enum import Enum

import streamlit as st
from openai import OpenAI

from llm_prompts import (
    AUDIT_SYSTEM_PROMPT,
    build_audit_prompt,
    get_chat_user_prompt,
    get_coach_system_prompt,
    validate_audit_response,
)
from models import ChatMessage, FinancialSnapshot, HealthScore
from pii_redaction import PIIRedactor

logger = logging.getLogger(__name__)

DEFAULT_COACH_MODEL = "gpt-4.1-mini"
CHAT_MAX_TOKENS = 2000
AUDIT_MAX_TOKENS = 3000
CHAT_TEMPERATURE = 0.7
MAX_HISTORY_MESSAGES = 10


class AIProvider(Enum):
    OPENAI = "openai"
    MOCK = "mock"


@dataclass
class AIResponse:
    """Response from AI model."""
    content: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    success: bool = True
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class CoachAIClient:
    """
    AI client for the financial coach.

    Supports:
    - OpenAI chat completions (or any OpenAI-compatible gateway via OPENAI_BASE_URL)
    - Mock responses (fallback when no API key)
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.provider = AIProvider.MOCK
        self.client = None
        self.model = model or os.getenv("COACH_MODEL", DEFAULT_COACH_MODEL)
        self.redactor = PIIRedactor()

        api_key = api_key or self._get_api_key()

        if api_key:
            try:
                self.client = OpenAI(api_key=api_key, base_url=os.getenv("OPENAI_BASE_URL") or None)
                self.provider = AIProvider.OPENAI
            except Exception as e:
                logger.error(f"Failed to initialize OpenAI client: {e}")
                self.provider = AIProvider.MOCK

    def _get_api_key(self) -> Optional[str]:
        """Get API key from Streamlit secrets or the environment."""
        try:
            if hasattr(st, 'secrets') and 'OPENAI_API_KEY' in st.secrets:
                return st.secrets['OPENAI_API_KEY']
        except Exception:
            pass

        return os.environ.get('OPENAI_API_KEY')

    @property
    def is_connected(self) -> bool:
        """Check if connected to real AI provider."""
        return self.provider == AIProvider.OPENAI and self.client is not None

    # =========================================================================
    # CHAT
    # =========================================================================

    def chat(
        self,
        message: str,
        context: Optional[str] = None,
        history: Optional[List[ChatMessage]] = None,
        province: Optional[str] = None
    ) -> AIResponse:
        """
        Answer a coaching question.

        Args:
            message: The user's question (redacted before sending)
            context: Financial context from build_financial_context, or None
            history: Earlier turns of the conversation, oldest first
            province: Province code used to pick provincial reference data
        """
        redaction = self.redactor.redact(message)
        safe_message = redaction.redacted_text

        is_safe, issues = self.redactor.validate_no_pii_leakage(safe_message)
        if not is_safe:
            logger.warning(f"Coach message may still contain personal data: {issues}")

        messages = [{"role": "system", "content": get_coach_system_prompt(province)}]
        for turn in (history or [])[-MAX_HISTORY_MESSAGES:]:
            content = turn.content
            if turn.role == "user":
                content = self.redactor.redact(content).redacted_text
            messages.append({"role": turn.role, "content": content})
        messages.append({"role": "user", "content": get_chat_user_prompt(safe_message, context)})

        if self.provider == AIProvider.OPENAI:
            return self._call_openai(messages, max_tokens=CHAT_MAX_TOKENS)
        return self._mock_chat_response(safe_message, context)

    # =========================================================================
    # AUDIT
    # =========================================================================

    def generate_audit(self, snapshot: FinancialSnapshot, health: HealthScore) -> AIResponse:
        """
        Produce the audit write-up for a computed score.

        On success `data` holds the parsed JSON object.
        """
        if self.provider != AIProvider.OPENAI:
            return self._mock_audit_response(snapshot, health)

        response = self._call_openai(
            [
                {"role": "system", "content": AUDIT_SYSTEM_PROMPT},
                {"role": "user", "content": build_audit_prompt(snapshot, health)},
            ],
            max_tokens=AUDIT_MAX_TOKENS,
            json_mode=True,
        )
        if not response.success:
            return response

        try:
            data = json.loads(response.content)
        except json.JSONDecodeError:
            logger.error("Audit response was not valid JSON")
            response.success = False
            response.error = "Invalid JSON response from AI service"
            return response

        is_valid, issues = validate_audit_response(data)
        if not is_valid:
            logger.error(f"Audit response missing fields: {issues}")
            response.success = False
            response.error = "Incomplete audit response from AI service"
            return response

        response.data = data
        return response

    # =========================================================================
    # PROVIDER CALLS
    # =========================================================================

    def _call_openai(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        json_mode: bool = False
    ) -> AIResponse:
        """Make a call to OpenAI API."""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": CHAT_TEMPERATURE,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(**kwargs)

            return AIResponse(
                content=response.choices[0].message.content or "",
                model=self.model,
                provider="openai",
                tokens_used=response.usage.total_tokens if response.usage else None,
                success=True
            )

        except Exception as e:
            logger.error(f"OpenAI request failed: {e}")
            return AIResponse(
                content="",
                model=self.model,
                provider="openai",
                success=False,
                error=str(e)
            )

    def _mock_chat_response(self, message: str, context: Optional[str]) -> AIResponse:
        """Generate mock response when no API key available."""
        if context:
            opener = "I've looked at the numbers you shared, so let's be straight about them."
        else:
            opener = "I don't have your numbers, so this is general guidance."

        content = f"""{opener}

You asked: "{message}"

Here's the playbook I give everyone before anything fancy:

1. **Know your surplus.** Take-home pay minus every expense. If it's negative, nothing else matters until it isn't.
2. **Kill high-interest debt.** Anything over 15% APR gets every spare dollar, highest rate first.
3. **Build a 3-month emergency fund** in a high-interest savings account.
4. **Then invest.** RRSP if your marginal rate is high today, TFSA if it's low or you want flexibility.

*The AI coach is running in offline mode. Set OPENAI_API_KEY for personalized answers.*"""

        return AIResponse(content=content, model="mock", provider="mock", success=True)

    def _mock_audit_response(self, snapshot: FinancialSnapshot, health: HealthScore) -> AIResponse:
        """Deterministic audit built from the snapshot when no API key is available."""
        plan = []
        if snapshot.monthly_surplus < 0:
            plan.append(f"Cut ${-snapshot.monthly_surplus:,.0f}/month from spending to stop the bleeding.")
        if snapshot.high_interest_debt > 0:
            plan.append(f"Throw every spare dollar at the ${snapshot.high_interest_debt:,.0f} of high-interest debt.")
        if snapshot.liquid_assets < snapshot.monthly_expenses * 3:
            plan.append(f"Build an emergency fund of ${snapshot.monthly_expenses * 3:,.0f}.")
        plan.append("Review this budget again in 30 days.")

        if snapshot.high_interest_debt > 0:
            debt_analysis = (
                f"You carry ${snapshot.high_interest_debt:,.0f} at rates above 15%. "
                "That is the first fire to put out."
            )
        elif snapshot.total_liabilities > 0:
            debt_analysis = f"Your ${snapshot.total_liabilities:,.0f} of debt is at manageable rates. Keep paying it on schedule."
        else:
            debt_analysis = "No debt recorded. Keep it that way."

        data = {
            "overall_assessment": (
                f"Your financial health score is {health.score}/10 ({health.severity.value}). "
                f"Net worth stands at ${snapshot.net_worth:,.0f}."
            ),
            "immediate_reaction": self._mock_reaction(health.score),
            "debt_analysis": debt_analysis,
            "action_plan": plan,
            "coach_quotes": ["A budget is telling your money where to go instead of wondering where it went."],
        }
        return AIResponse(
            content=json.dumps(data),
            model="mock",
            provider="mock",
            success=True,
            data=data,
        )

    @staticmethod
    def _mock_reaction(score: int) -> str:
        if score >= 8:
            return "Honestly? This is solid. Don't get complacent."
        if score >= 6:
            return "Not bad, but there's money leaking somewhere."
        if score >= 4:
            return "We need to talk. This is heading the wrong way."
        return "This is an emergency. We fix it starting today."
