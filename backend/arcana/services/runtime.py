"""
Wiring of the prediction services

The FastAPI lifespan builds one WorkflowRuntime and keeps it on app.state;
tests build their own with fake stages and a throwaway database.
"""
from dataclasses import dataclass
from typing import Optional

from arcana.components.analyst import AnalystStage
from arcana.components.base import StageSet
from arcana.components.dealer import DealerStage
from arcana.components.gatekeeper import GatekeeperStage
from arcana.components.mystic import MysticStage
from arcana.components.prompt_repository import ComponentPromptRepository
from arcana.core.config import Settings
from arcana.core.database import SessionFactory
from arcana.core.llm_client import LLMClient
from arcana.core.task_runner import BackgroundTaskRunner
from arcana.services.card_catalog import CardCatalog, build_default_catalog
from arcana.services.credit_ledger import CreditLedger
from arcana.services.prediction_handlers import StatusHandler, SubmitHandler
from arcana.services.prediction_store import PredictionStore
from arcana.services.prediction_workflow import PredictionWorkflow
from arcana.services.rate_limiter import RateLimiter


@dataclass
class WorkflowRuntime:
    settings: Settings
    store: PredictionStore
    ledger: CreditLedger
    rate_limiter: RateLimiter
    catalog: CardCatalog
    workflow: PredictionWorkflow
    runner: BackgroundTaskRunner
    submit_handler: SubmitHandler
    status_handler: StatusHandler
    llm: Optional[LLMClient] = None

    async def close(self, timeout: Optional[float] = None) -> None:
        """Drain background jobs, then release the LLM connection pool"""
        await self.runner.shutdown(timeout=timeout)
        if self.llm is not None:
            await self.llm.close()


def build_llm_stages(
    settings: Settings,
    llm: LLMClient,
    catalog: CardCatalog,
    prompts: Optional[ComponentPromptRepository] = None,
) -> StageSet:
    """The four LLM-backed stages sharing one client and prompt repository"""
    prompts = prompts or ComponentPromptRepository()
    return StageSet(
        policy=GatekeeperStage(llm, prompts),
        analysis=AnalystStage(
            llm,
            prompts,
            allowed_counts=settings.allowed_card_counts_list,
            default_count=settings.default_card_count,
        ),
        selection=DealerStage(llm, catalog, prompts, deck_size=settings.card_deck_size),
        narration=MysticStage(llm, catalog, prompts),
    )


def build_runtime(
    settings: Settings,
    session_factory: SessionFactory,
    stages: Optional[StageSet] = None,
    llm: Optional[LLMClient] = None,
    catalog: Optional[CardCatalog] = None,
) -> WorkflowRuntime:
    """
    Assemble store, ledger, limiter, workflow and handlers

    Args:
        settings: Application settings
        session_factory: Callable returning a new SQLAlchemy session
        stages: Stage implementations; LLM-backed stages when omitted
        llm: Shared LLM client; created from settings when stages are omitted
        catalog: Card metadata; the built-in deck when omitted
    """
    catalog = catalog or build_default_catalog()
    if stages is None:
        llm = llm or LLMClient(settings)
        stages = build_llm_stages(settings, llm, catalog)

    store = PredictionStore(session_factory)
    ledger = CreditLedger(session_factory)
    rate_limiter = RateLimiter(store, cooldown_seconds=settings.rate_limit_cooldown_seconds)
    workflow = PredictionWorkflow.from_settings(settings, store, ledger, stages, catalog)
    runner = BackgroundTaskRunner()

    return WorkflowRuntime(
        settings=settings,
        store=store,
        ledger=ledger,
        rate_limiter=rate_limiter,
        catalog=catalog,
        workflow=workflow,
        runner=runner,
        submit_handler=SubmitHandler(store, ledger, rate_limiter, runner, workflow, settings),
        status_handler=StatusHandler(store),
        llm=llm,
    )
