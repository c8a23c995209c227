"""Pytest configuration and fixtures."""

import os
from datetime import date
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("METRICS_API_KEY", "metrics-test-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")

from fincanvas.artifacts.catalog import load_catalog  # noqa: E402
from fincanvas.artifacts.store import ArtifactStore  # noqa: E402
from fincanvas.conversation.state import ConversationLog  # noqa: E402
from fincanvas.session import CanvasSession  # noqa: E402

TODAY = date(2024, 3, 15)


def make_fragment(kind: str = "burn-rate") -> dict[str, Any]:
    """A metrics fragment shaped like the metrics API response."""
    return {
        "chart": {"series": [{"month": "2024-01", "value": 1200}]},
        "metrics": {"average": 1200, "currency": "USD"},
        "summary": f"{kind} looks steady.",
    }


@pytest.fixture
def catalog():
    """The packaged artifact catalog."""
    return load_catalog()


@pytest.fixture
def store(catalog):
    """An empty artifact store."""
    return ArtifactStore(catalog)


@pytest.fixture
def conversation_log():
    """An empty conversation log."""
    return ConversationLog()


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def provider():
    """A metrics provider returning one fragment for every kind."""
    mock = AsyncMock()
    mock.fetch_metrics = AsyncMock(side_effect=lambda kind, params: make_fragment(kind))
    return mock


@pytest.fixture
def breakdown_fragment():
    """A breakdown fragment with every detail section and two months."""
    return {
        "chart": {"categories": [{"name": "Rent", "amount": 900}]},
        "metrics": {"revenue": 5000, "expenses": 3000, "profit": 2000},
        "summary": "Profit is healthy.",
        "transactions": [{"id": "t1", "amount": 100}],
        "invoices": [{"id": "i1", "amount": 500}],
        "categories": [{"name": "Rent", "amount": 900}],
        "vendors": [{"name": "Landlord", "amount": 900}],
        "customers": [{"name": "Acme", "revenue": 5000}],
        "months": [
            {"month": "2024-01", "metrics": {"revenue": 2000}, "summary": "January."},
            {"month": "2024-02", "metrics": {"revenue": 3000}},
        ],
    }


@pytest.fixture
def session(provider):
    """An open canvas session over the mock provider."""
    return CanvasSession(provider, team_id="team_1", session_id="sess_1", today=TODAY).open()
