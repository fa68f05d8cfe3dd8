"""
Pytest configuration and fixtures
"""
import os
import sys
import time
from pathlib import Path
from types import SimpleNamespace
from typing import List

import pytest
from sqlalchemy.orm import Session, sessionmaker

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Ensure default: do not run real LLM tests unless explicitly enabled
os.environ.setdefault("RUN_REAL_LLM_TESTS", "0")

from arcana.components.base import (AnalysisStage, NarrationStage, PolicyStage,
                                    SelectionStage, StageSet)
from arcana.components.contracts import (AnalysisResult, Approved,
                                         NarrationItem, NarrationResult,
                                         SelectionResult)
from arcana.core.config import Settings
from arcana.core.database import Base, build_engine
from arcana.core.retry import RetryPolicy
from arcana.services.card_catalog import build_default_catalog
from arcana.services.credit_ledger import CreditLedger
from arcana.services.prediction_store import PredictionStore
from arcana.services.prediction_workflow import PredictionWorkflow
from arcana.services.runtime import build_runtime


# ---------------------------------------------------------------------------
# Canned stage outputs
# ---------------------------------------------------------------------------

def make_analysis(count: int = 3) -> AnalysisResult:
    return AnalysisResult(
        mood="hopeful",
        topic="career",
        period="next three months",
        context="considering a job offer abroad",
        recommended_count=count,
    )


def make_selection(items: List[int] = None, confidence: float = 0.8) -> SelectionResult:
    return SelectionResult(
        selected_items=items if items is not None else [0, 21, 35],
        reasoning="A balanced spread for a career question",
        confidence=confidence,
    )


def make_narration(count: int = 3) -> NarrationResult:
    return NarrationResult(
        header="A path is opening",
        per_item=[
            NarrationItem(position=i + 1, interpretation=f"Interpretation {i + 1}")
            for i in range(count)
        ],
        body="The cards point towards a bold step.",
        suggestions=["Prepare carefully", "Talk to people you trust"],
        followups=["What would make the move easier?"],
        summary="Change is favourable.",
        disclaimer="For reflection only.",
    )


# ---------------------------------------------------------------------------
# Scripted stages: each call consumes the next step; the last step repeats.
# A step that is an exception instance is raised instead of returned.
# ---------------------------------------------------------------------------

class _Script:
    def __init__(self, steps):
        self.steps = list(steps)
        self.calls = 0
        self.inputs = []

    async def next(self, *args):
        self.inputs.append(args)
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, BaseException):
            raise step
        return step


class ScriptedPolicy(_Script, PolicyStage):
    async def evaluate(self, question):
        return await self.next(question)


class ScriptedAnalysis(_Script, AnalysisStage):
    async def analyze(self, question, context=None):
        return await self.next(question, context)


class ScriptedSelection(_Script, SelectionStage):
    async def select(self, question, analysis):
        return await self.next(question, analysis)


class ScriptedNarration(_Script, NarrationStage):
    async def narrate(self, question, analysis, selected_items):
        return await self.next(question, analysis, list(selected_items))


@pytest.fixture
def canned():
    """Factories for valid stage outputs"""
    return SimpleNamespace(analysis=make_analysis, selection=make_selection, narration=make_narration)


@pytest.fixture
def make_stages():
    """Build a StageSet from lists of steps; omitted stages always succeed"""
    def _make(policy=None, analysis=None, selection=None, narration=None) -> StageSet:
        return StageSet(
            policy=ScriptedPolicy(policy or [Approved()]),
            analysis=ScriptedAnalysis(analysis or [make_analysis()]),
            selection=ScriptedSelection(selection or [make_selection()]),
            narration=ScriptedNarration(narration or [make_narration()]),
        )
    return _make


# ---------------------------------------------------------------------------
# Database / services
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file with no retry delays"""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'arcana_test.db'}",
        stage_base_delay_seconds=0.0,
        persistence_base_delay_seconds=0.0,
        stage_timeout_seconds=5.0,
        llm_base_url="http://llm.test",
    )


@pytest.fixture
def engine(settings):
    import arcana.models  # noqa: F401 - register models with Base.metadata

    engine = build_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    """Create a database session for testing"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def store(session_factory) -> PredictionStore:
    return PredictionStore(session_factory)


@pytest.fixture
def ledger(session_factory) -> CreditLedger:
    return CreditLedger(session_factory)


@pytest.fixture
def catalog():
    return build_default_catalog()


@pytest.fixture
def sleeps():
    """Delays requested by the retry executor, in order"""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def make_workflow(store, ledger, catalog, fake_sleep):
    def _make(stages: StageSet, **kwargs) -> PredictionWorkflow:
        options = {
            "stage_policy": RetryPolicy(max_attempts=3, base_delay=1.0),
            "persistence_policy": RetryPolicy(max_attempts=3, base_delay=0.5),
            "reading_cost": 1,
            "sleep": fake_sleep,
        }
        options.update(kwargs)
        return PredictionWorkflow(store, ledger, stages, catalog, **options)
    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def runtime(settings, session_factory, catalog, make_stages):
    return build_runtime(settings, session_factory, stages=make_stages(), catalog=catalog)


@pytest.fixture
def client(runtime, session_factory):
    """Create test client with runtime and database dependency override"""
    from fastapi.testclient import TestClient

    from arcana.core.database import get_db
    from main import create_app

    app = create_app()
    app.state.runtime = runtime

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def wait_for_terminal(client):
    """Poll the status endpoint until the job is COMPLETED or FAILED"""
    def _wait(job_id: str, timeout: float = 5.0) -> dict:
        deadline = time.monotonic() + timeout
        while True:
            body = client.get(f"/api/predict/{job_id}").json()
            if body["status"] in ("COMPLETED", "FAILED") or time.monotonic() > deadline:
                return body
            time.sleep(0.02)
    return _wait


# ---------------------------------------------------------------------------
# Test-run safety: skip `real_llm` marked tests by default unless explicit flag
# ---------------------------------------------------------------------------
def pytest_collection_modifyitems(config, items):
    """Skip real-LLM tests unless RUN_REAL_LLM_TESTS=1 is set in env."""
    if os.environ.get("RUN_REAL_LLM_TESTS", "0") == "1":
        return
    skip_marker = pytest.mark.skip(reason="Real LLM tests disabled. Set RUN_REAL_LLM_TESTS=1 to enable.")
    for item in items:
        if "real_llm" in getattr(item, "keywords", {}):
            item.add_marker(skip_marker)
