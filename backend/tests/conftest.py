"""Pytest fixtures shared by unit and integration tests.

Provides reusable test fixtures for:
- In-memory SQLite database session (tables created per test)
- Pattern store and invoice line items
- Stub extraction providers
- TestClient with database, pattern store and orchestrator overridden

Usage:
    def test_stats(client, auth_headers):
        response = client.get("/api/v1/invoices/learning/stats", headers=auth_headers)
        assert response.status_code == 200
"""

import os
import sys
import time
from decimal import Decimal
from pathlib import Path
from typing import Generator, Optional

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("ANTHROPIC_API_KEY", None)

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.base import Base
from models.invoice_line_item import InvoiceLineItem
from domain.errors import ProviderFailureError
from domain.extraction.models import StructuredInvoice
from domain.extraction.orchestrator import ExtractionOrchestrator
from domain.extraction.ports import ExtractionProviderPort, ProviderOutcome
from domain.extraction.strategies import StrategyRegistry
from infrastructure.providers.rule_based_provider import RuleBasedProvider
from learning.pattern_store import PatternStore


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class StubProvider(ExtractionProviderPort):
    """Provider returning a canned outcome, optionally slow or failing.

    Records how many times it was called so tests can assert on chain order.
    """

    def __init__(
        self,
        name: str,
        confidence: float = 0.9,
        cost: Decimal = Decimal("0"),
        delay: float = 0.0,
        error: Optional[Exception] = None,
        invoice: Optional[StructuredInvoice] = None,
        estimate: Decimal = Decimal("0"),
    ):
        self.name = name
        self.confidence = confidence
        self.cost = cost
        self.delay = delay
        self.error = error
        self.invoice = invoice or StructuredInvoice(invoice_number=f"{name.upper()}-1")
        self.estimate = estimate
        self.calls = 0

    def attempt(self, text: str, context: dict) -> ProviderOutcome:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProviderOutcome(invoice=self.invoice, confidence=self.confidence, cost=self.cost)

    def estimate_cost(self, text: str) -> Decimal:
        return self.estimate


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def pattern_store() -> PatternStore:
    return PatternStore()


@pytest.fixture
def make_line_item(db_session: Session):
    """Factory inserting an invoice line item."""

    def _make(line_item_id: str = "line-1", description: str = "Steel beams 200UB", amount="1500.00",
              category: Optional[str] = "MATERIAL") -> InvoiceLineItem:
        item = InvoiceLineItem(
            id=line_item_id,
            invoice_ref="inv-1",
            description=description,
            amount=Decimal(amount),
            category=category,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture
def stub_orchestrator(pattern_store: PatternStore) -> ExtractionOrchestrator:
    """Orchestrator with the rule-based provider and two stub LLM providers."""
    providers = {
        "traditional": RuleBasedProvider(pattern_store),
        "openai": StubProvider("openai", confidence=0.92, cost=Decimal("0.0012")),
        "openai-accurate": StubProvider(
            "openai-accurate", error=ProviderFailureError("quota exceeded"), cost=Decimal("0.01"),
        ),
    }
    registry = StrategyRegistry.from_providers(
        ["openai", "openai-accurate"],
        {"openai": Decimal("0.00015"), "openai-accurate": Decimal("0.0025")},
        default="hybrid",
    )
    return ExtractionOrchestrator(registry, providers, timeout_seconds=2.0)


@pytest.fixture
def client(db_session: Session, pattern_store: PatternStore, stub_orchestrator: ExtractionOrchestrator):
    """TestClient with dependency overrides; lifespan startup is not run."""
    from main import app
    from database import get_db
    from dependencies import get_orchestrator, get_pattern_store

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pattern_store] = lambda: pattern_store
    app.dependency_overrides[get_orchestrator] = lambda: stub_orchestrator

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    return {"X-User-Id": "reviewer-1"}
