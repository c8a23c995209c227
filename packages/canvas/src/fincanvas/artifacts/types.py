"""Artifact type identifiers.

The statically known canvases form a closed enum. Monthly breakdowns are a
parameterized family (``breakdown-summary-canvas-YYYY-MM``) that shares one
renderer and is recognised by a strict pattern rather than by enum lookup.
"""

import re
from enum import Enum


class ArtifactType(str, Enum):
    """Statically known artifact types."""

    BURN_RATE = "burn-rate-canvas"
    CASH_FLOW = "cash-flow-canvas"
    REVENUE = "revenue-canvas"
    PROFIT = "profit-canvas"
    PROFIT_ANALYSIS = "profit-analysis-canvas"
    TAX_SUMMARY = "tax-summary-canvas"
    GROWTH_RATE = "growth-rate-canvas"
    HEALTH_REPORT = "health-report-canvas"
    STRESS_TEST = "stress-test-canvas"
    RUNWAY = "runway-canvas"
    SPENDING = "spending-canvas"
    BALANCE_SHEET = "balance-sheet-canvas"
    CATEGORY_EXPENSES = "category-expenses-canvas"
    FORECAST = "forecast-canvas"
    INVOICE_PAYMENT = "invoice-payment-canvas"

    # Metrics breakdown
    BREAKDOWN_SUMMARY = "breakdown-summary-canvas"
    BREAKDOWN_TRANSACTIONS = "breakdown-transactions-canvas"
    BREAKDOWN_INVOICES = "breakdown-invoices-canvas"
    BREAKDOWN_CATEGORIES = "breakdown-categories-canvas"
    BREAKDOWN_VENDORS = "breakdown-vendors-canvas"
    BREAKDOWN_CUSTOMERS = "breakdown-customers-canvas"

    # Conversation metadata, never shown on the canvas
    CHAT_TITLE = "chat-title"
    SUGGESTIONS = "suggestions"


SYNTHETIC_TYPES: frozenset[ArtifactType] = frozenset(
    {ArtifactType.CHAT_TITLE, ArtifactType.SUGGESTIONS}
)

DISPLAYABLE_TYPES: tuple[ArtifactType, ...] = tuple(
    t for t in ArtifactType if t not in SYNTHETIC_TYPES
)

MONTHLY_BREAKDOWN_PREFIX = f"{ArtifactType.BREAKDOWN_SUMMARY.value}-"
MONTHLY_BREAKDOWN_PATTERN = re.compile(
    r"breakdown-summary-canvas-(?P<year>\d{4})-(?P<month>0[1-9]|1[0-2])"
)


def is_monthly_breakdown_type(value: object) -> bool:
    """Return True only for well-formed monthly breakdown identifiers."""
    if not isinstance(value, str):
        return False
    return MONTHLY_BREAKDOWN_PATTERN.fullmatch(value) is not None


def monthly_breakdown_type(year: int, month: int) -> str:
    """Build the artifact type for one month of the breakdown family."""
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range: {month}")
    if not 0 <= year <= 9999:
        raise ValueError(f"year out of range: {year}")
    return f"{MONTHLY_BREAKDOWN_PREFIX}{year:04d}-{month:02d}"


def month_of(artifact_type: str) -> tuple[int, int] | None:
    """Return (year, month) for a monthly breakdown type, else None."""
    match = MONTHLY_BREAKDOWN_PATTERN.fullmatch(artifact_type)
    if match is None:
        return None
    return int(match.group("year")), int(match.group("month"))


def get_base_breakdown_type(artifact_type: str) -> str:
    """Map a monthly breakdown type to its family base type."""
    if is_monthly_breakdown_type(artifact_type):
        return ArtifactType.BREAKDOWN_SUMMARY.value
    return artifact_type


def parse_artifact_type(value: str | None) -> ArtifactType | str | None:
    """Classify a raw type string.

    Returns the enum member for known types, the string itself for members of
    the monthly family, and None for anything else.
    """
    if not value:
        return None
    if is_monthly_breakdown_type(value):
        return value
    try:
        return ArtifactType(value)
    except ValueError:
        return None


def type_key(artifact_type: ArtifactType | str) -> str:
    """Normalise an artifact type to its string key."""
    if isinstance(artifact_type, ArtifactType):
        return artifact_type.value
    return artifact_type
