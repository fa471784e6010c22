"""
SmartBudget Canada - PII Redaction
==================================
Privacy layer for the AI coach.

Users type free text into the coach ("my SIN is...", "call me at...").
Before a message leaves the server for the LLM provider, structured
personal identifiers are replaced with typed tokens such as [SIN_1].
Dollar amounts and percentages are left alone because the coach needs them.

The token map records which kind of identifier each token replaced,
never the identifier itself.
"""

import re
import time
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Set, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# PATTERNS
# Scanned in this order, so longer digit runs (cards, phones) are consumed
# before the nine-digit SIN patterns can claim part of them.
# =============================================================================

_RAW_PATTERNS: List[Tuple[str, str]] = [
    ("EMAIL", r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),

    # 16-19 digit cards, optionally grouped, then 15-digit Amex
    ("CARD_NUMBER", r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}(?:[\s-]?\d{1,3})?\b'),
    ("CARD_NUMBER", r'\b\d{4}[\s-]?\d{6}[\s-]?\d{5}\b'),

    # Bank details only when labelled (account / transit / institution)
    ("BANK_ACCOUNT", r'\b(?:account|acct|chequing|checking|savings)\s*(?:number|no\.?|#)?[:\s#]*\d{5,12}\b'),
    ("BANK_ACCOUNT", r'\btransit\s*(?:number|no\.?|#)?[:\s#]*\d{5}\b'),
    ("BANK_ACCOUNT", r'\binstitution\s*(?:number|no\.?|#)?[:\s#]*\d{3}\b'),

    ("PHONE", r'\(\d{3}\)\s*\d{3}[-.\s]?\d{4}\b'),
    ("PHONE", r'\b(?:\+?1[-.\s]?)?\d{3}[-.\s]\d{3}[-.\s]\d{4}\b'),
    ("PHONE", r'\b\d{10}\b'),

    # Social Insurance Number, labelled or in 3-3-3 groups
    ("SIN", r'\bSIN[:\s#]*\d{3}[-\s]?\d{3}[-\s]?\d{3}\b'),
    ("SIN", r'\b\d{3}[-\s]\d{3}[-\s]\d{3}\b'),
    ("SIN", r'\b\d{9}\b'),

    # A1A 1A1 (letters D, F, I, O, Q, U never appear)
    ("POSTAL_CODE", r'\b[ABCEGHJ-NPRSTVXY]\d[ABCEGHJ-NPRSTV-Z][\s-]?\d[ABCEGHJ-NPRSTV-Z]\d\b'),
]

# Street names must be capitalized, so this one is case sensitive
_ADDRESS_PATTERN = (
    r'\b\d{1,5}\s+(?:[A-Z][\w\']*\s+){1,4}(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|'
    r'Crescent|Cres|Court|Ct|Way|Lane|Ln|Place|Pl|Terrace|Trail)\b\.?'
)

PII_PATTERNS: List[Tuple[str, Pattern]] = [
    (pii_type, re.compile(pattern, re.IGNORECASE)) for pii_type, pattern in _RAW_PATTERNS
] + [("ADDRESS", re.compile(_ADDRESS_PATTERN))]

# Looser checks used as a last look before text leaves the server
LEAKAGE_CHECKS: List[Tuple[Pattern, str]] = [
    (re.compile(r'\b\d{3}[-\s]?\d{3}[-\s]?\d{3}\b'), "Possible SIN left in text"),
    (re.compile(_RAW_PATTERNS[0][1]), "Possible email address left in text"),
    (re.compile(r'\b\d{10,}\b'), "Long digit run left in text (card or account?)"),
]


@dataclass
class RedactionResult:
    """Outcome of redacting one piece of text."""

    original_length: int
    redacted_text: str
    redacted_length: int
    pii_types_found: Set[str] = field(default_factory=set)
    redaction_count: int = 0
    token_map: Dict[str, str] = field(default_factory=dict)  # token -> PII type only
    processing_time_ms: float = 0.0

    @property
    def was_modified(self) -> bool:
        return self.redaction_count > 0


class PIIRedactor:
    """
    Regex-based redaction of Canadian personal identifiers.

    Token numbering restarts for every call to redact(), so the same
    message always produces the same output.
    """

    def __init__(self, patterns: List[Tuple[str, Pattern]] = None):
        self.patterns = patterns or PII_PATTERNS

    def redact(self, raw_text: str) -> RedactionResult:
        """Return `raw_text` with every identifier replaced by a token."""
        started = time.perf_counter()

        if not raw_text or not raw_text.strip():
            return RedactionResult(original_length=0, redacted_text="", redacted_length=0)

        counters: Dict[str, int] = {}
        token_map: Dict[str, str] = {}

        def tokenize(pii_type: str):
            def replace(match) -> str:
                counters[pii_type] = counters.get(pii_type, 0) + 1
                token = f"[{pii_type}_{counters[pii_type]}]"
                token_map[token] = pii_type
                return token
            return replace

        text = raw_text
        for pii_type, pattern in self.patterns:
            text = pattern.sub(tokenize(pii_type), text)

        found = set(token_map.values())
        if found:
            logger.info(f"Redacted {len(token_map)} item(s) from coach message: {sorted(found)}")

        return RedactionResult(
            original_length=len(raw_text),
            redacted_text=text,
            redacted_length=len(text),
            pii_types_found=found,
            redaction_count=len(token_map),
            token_map=token_map,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    def validate_no_pii_leakage(self, text: str) -> Tuple[bool, List[str]]:
        """
        Second look at text that is about to be sent.

        Returns (is_safe, issues).
        """
        issues = [message for pattern, message in LEAKAGE_CHECKS if pattern.search(text)]
        return not issues, issues


def redact_sensitive_data(raw_text: str) -> str:
    """Redacted text only, for callers that don't need the details."""
    return PIIRedactor().redact(raw_text).redacted_text
