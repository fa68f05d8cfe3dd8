"""
Prediction workflow: drives one job from PROCESSING to a terminal status

policy -> analysis -> selection -> narration -> debit -> complete

Each stage runs through the stage retry policy, each checkpoint through the
persistence retry policy. A failed completion after a successful debit is
compensated with a refund.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from arcana.components.base import StageSet
from arcana.components.contracts import (AnalysisResult, NarrationResult,
                                         Rejected, SelectionResult,
                                         narration_problem, selection_problem)
from arcana.components.fallbacks import build_fallback_reading
from arcana.components.reading import assemble_reading
from arcana.core.config import Settings
from arcana.core.errors import (CompensationError, InsufficientCreditError,
                                LedgerError, PersistenceError,
                                StageOutputError, TransientStageError)
from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import (compensation_failures_total,
                                 narration_fallbacks_total,
                                 prediction_duration_seconds,
                                 predictions_finished_total,
                                 stage_duration_seconds)
from arcana.core.retry import RetryPolicy, Sleep, execute_with_retry
from arcana.models.prediction import PredictionStatus
from arcana.services.card_catalog import CardCatalog
from arcana.services.credit_ledger import CreditLedger
from arcana.services.prediction_store import PredictionStore

logger = LoggingConfig.get_logger(__name__)

T = TypeVar("T")

# failure_code values stored on FAILED predictions
POLICY_REJECTED = "POLICY_REJECTED"
STAGE_FAILED = "STAGE_FAILED"
INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
CREDIT_DEBIT_FAILED = "CREDIT_DEBIT_FAILED"
PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
WORKFLOW_FAILED = "WORKFLOW_FAILED"
WORKFLOW_CANCELLED = "WORKFLOW_CANCELLED"

REFUND_REASON = "system error"


def failure_code_for(error: BaseException) -> str:
    """Map an exception to the failure_code stored on the prediction"""
    if isinstance(error, InsufficientCreditError):
        return INSUFFICIENT_CREDITS
    if isinstance(error, LedgerError):
        return CREDIT_DEBIT_FAILED
    if isinstance(error, PersistenceError):
        return PERSISTENCE_FAILED
    if isinstance(error, TransientStageError):
        return STAGE_FAILED
    return WORKFLOW_FAILED


class PredictionWorkflow:
    """
    Runs the reading stages for one job and records every step durably

    Collaborators are injected; nothing here reaches for globals.
    """

    def __init__(
        self,
        store: PredictionStore,
        ledger: CreditLedger,
        stages: StageSet,
        catalog: CardCatalog,
        stage_policy: Optional[RetryPolicy] = None,
        persistence_policy: Optional[RetryPolicy] = None,
        deck_size: Optional[int] = None,
        reading_cost: int = 1,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.ledger = ledger
        self.stages = stages
        self.catalog = catalog
        self.stage_policy = stage_policy or RetryPolicy(max_attempts=3, base_delay=1.0)
        self.persistence_policy = persistence_policy or RetryPolicy(max_attempts=3, base_delay=0.5)
        self.deck_size = deck_size or len(catalog)
        self.reading_cost = reading_cost
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: PredictionStore,
        ledger: CreditLedger,
        stages: StageSet,
        catalog: CardCatalog,
    ) -> "PredictionWorkflow":
        return cls(
            store=store,
            ledger=ledger,
            stages=stages,
            catalog=catalog,
            stage_policy=RetryPolicy(
                max_attempts=settings.stage_max_attempts,
                base_delay=settings.stage_base_delay_seconds,
                timeout=settings.stage_timeout_seconds,
            ),
            persistence_policy=RetryPolicy(
                max_attempts=settings.persistence_max_attempts,
                base_delay=settings.persistence_base_delay_seconds,
            ),
            deck_size=settings.card_deck_size,
            reading_cost=settings.reading_cost,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, job_id: str, question: str, user_id: Optional[str] = None) -> None:
        """
        Advance job_id to COMPLETED or FAILED

        Args:
            job_id: Prediction created in PENDING by the submit handler
            question: Validated question text
            user_id: Account to debit on success (anonymous jobs are free)

        Raises:
            Whatever stopped the workflow, after the job was marked FAILED
        """
        started = time.monotonic()
        with LoggingConfig.job_context(job_id, user_id=user_id):
            logger.info("Workflow started")
            try:
                status, code = await self._execute(job_id, question, user_id)
            except asyncio.CancelledError:
                logger.warning(
                    "Workflow cancelled before reaching a terminal state",
                    extra={"failure_code": WORKFLOW_CANCELLED},
                )
                await asyncio.shield(self._mark_failed_best_effort(job_id, WORKFLOW_CANCELLED))
                self._record_finish(PredictionStatus.FAILED, WORKFLOW_CANCELLED, started)
                raise
            except Exception as e:
                code = failure_code_for(e)
                logger.error(
                    f"Workflow failed: {e}",
                    exc_info=True,
                    extra={"failure_code": code, "error_type": type(e).__name__},
                )
                await self._mark_failed_best_effort(job_id, code)
                self._record_finish(PredictionStatus.FAILED, code, started)
                raise

            self._record_finish(status, code, started)

    async def _execute(
        self,
        job_id: str,
        question: str,
        user_id: Optional[str],
    ) -> Tuple[PredictionStatus, Optional[str]]:
        await self._persist("processing", self.store.mark_processing, job_id)

        outcome = await self._stage(self.stages.policy.name, lambda: self.stages.policy.evaluate(question))
        if isinstance(outcome, Rejected):
            logger.info("Question rejected by policy", extra={"reason": outcome.reason})
            await self._persist("policy_rejected", self.store.mark_failed, job_id, POLICY_REJECTED)
            return PredictionStatus.FAILED, POLICY_REJECTED

        analysis: AnalysisResult = await self._stage(
            self.stages.analysis.name,
            lambda: self.stages.analysis.analyze(question, outcome.context),
        )
        await self._persist("analysis", self.store.checkpoint_analysis, job_id, analysis.model_dump())

        selection: SelectionResult = await self._stage(
            self.stages.selection.name,
            lambda: self._select(question, analysis),
        )
        selected = list(selection.selected_items)
        await self._persist("selection", self.store.checkpoint_selection, job_id, selected)

        reading = await self._narrate(question, analysis, selected)

        debited = False
        if user_id:
            await asyncio.to_thread(
                self.ledger.debit,
                user_id,
                {"prediction_id": job_id},
                self.reading_cost,
                f"debit:{job_id}",
            )
            debited = True

        try:
            await self._persist("completed", self.store.mark_completed, job_id, reading)
        except BaseException:
            if debited:
                await asyncio.shield(self._refund_unless_completed(job_id, user_id))
            raise

        logger.info(
            "Workflow completed",
            extra={"selected_cards": selected, "fallback": reading.get("is_fallback", False)},
        )
        return PredictionStatus.COMPLETED, None

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _select(self, question: str, analysis: AnalysisResult) -> SelectionResult:
        selection = await self.stages.selection.select(question, analysis)
        problem = selection_problem(selection.selected_items, analysis.recommended_count, self.deck_size)
        if problem:
            raise StageOutputError(self.stages.selection.name, problem)
        return selection

    async def _narrate_once(
        self,
        question: str,
        analysis: AnalysisResult,
        selected: List[int],
    ) -> NarrationResult:
        narration = await self.stages.narration.narrate(question, analysis, selected)
        problem = narration_problem(len(narration.per_item), len(selected))
        if problem:
            raise StageOutputError(self.stages.narration.name, problem)
        return narration

    async def _narrate(self, question: str, analysis: AnalysisResult, selected: List[int]) -> dict:
        """Narration result, or the fallback reading when output stays malformed"""
        try:
            narration = await self._stage(
                self.stages.narration.name,
                lambda: self._narrate_once(question, analysis, selected),
            )
        except StageOutputError as e:
            narration_fallbacks_total.inc()
            logger.warning(
                "Narration output invalid after retries, using fallback reading",
                extra={"reason": str(e)},
            )
            return build_fallback_reading(question, analysis, selected, self.catalog)
        return assemble_reading(narration, selected, self.catalog)

    async def _stage(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        start = time.monotonic()
        result = await execute_with_retry(
            operation,
            self.stage_policy,
            label=f"stage:{name}",
            sleep=self._sleep,
        )
        stage_duration_seconds.labels(stage=name).observe(time.monotonic() - start)
        return result

    # ------------------------------------------------------------------
    # Persistence / credits
    # ------------------------------------------------------------------

    async def _persist(self, label: str, write: Callable[..., Any], *args: Any) -> Any:
        return await execute_with_retry(
            lambda: asyncio.to_thread(write, *args),
            self.persistence_policy,
            label=f"persist:{label}",
            sleep=self._sleep,
            retry_on=(PersistenceError,),
        )

    async def _refund_unless_completed(self, job_id: str, user_id: str) -> None:
        """Refund the debit unless the completion write landed before the error surfaced"""
        try:
            prediction = await asyncio.to_thread(self.store.get, job_id)
        except PersistenceError:
            prediction = None
        if prediction is not None and prediction.status == PredictionStatus.COMPLETED:
            logger.warning("Completion was stored despite the error, keeping the debit")
            return
        await self._compensate(job_id, user_id)

    async def _compensate(self, job_id: str, user_id: str) -> None:
        """Refund the debit of a job whose completion could not be stored"""
        try:
            await self._persist(
                "refund",
                self.ledger.refund,
                user_id,
                self.reading_cost,
                REFUND_REASON,
                {"prediction_id": job_id},
                f"refund:{job_id}",
            )
        except Exception as refund_error:
            compensation_failures_total.inc()
            error = CompensationError(job_id, user_id, refund_error)
            logger.critical(
                str(error),
                exc_info=(type(refund_error), refund_error, refund_error.__traceback__),
                extra={"amount": self.reading_cost, "needs_reconciliation": True},
            )
            return
        logger.warning("Debit refunded after failed completion", extra={"amount": self.reading_cost})

    async def _mark_failed_best_effort(self, job_id: str, code: str) -> None:
        try:
            await self._persist("failed", self.store.mark_failed, job_id, code)
        except Exception as mark_error:
            logger.error(
                f"Could not mark job FAILED: {mark_error}",
                extra={"failure_code": code, "error_type": type(mark_error).__name__},
            )

    @staticmethod
    def _record_finish(status: PredictionStatus, failure_code: Optional[str], started: float) -> None:
        predictions_finished_total.labels(status=status.value, failure_code=failure_code or "").inc()
        prediction_duration_seconds.labels(status=status.value).observe(time.monotonic() - started)
