"""Pipeline orchestrator.

Drives one query through its stages:
1. query analysis
2. asset analysis, fanned out over a bounded pool (one task per asset)
3. synthesis into a creative brief
4. script generation (video-bound queries only)

Every state change goes through the progress store, which publishes it to
subscribers. Per-asset failures are isolated; query analysis and synthesis
failures are fatal to the query.
"""

import asyncio
import os
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID

from dreamcut.domain.analysis import AssetAnalysis, VideoAnalysis, analysis_from_dict
from dreamcut.domain.enums import AssetStatus, Intent, QueryStage, QueryStatus
from dreamcut.domain.models import AssetPatch, AssetRecord, QueryMetrics, QueryRecord
from dreamcut.errors import (
    DreamCutError,
    InsufficientAssetsError,
    InvalidTransitionError,
    PersistenceError,
    PipelineCancelledError,
    UpstreamTimeoutError,
)
from dreamcut.logging import get_logger, query_log_context
from dreamcut.services.cancellation import CANCELLED_MESSAGE, CancellationToken
from dreamcut.services.director import Director
from dreamcut.stages.asset_analysis import AssetAnalyzer
from dreamcut.stages.query_analysis import QueryAnalysis, QueryAnalyzer
from dreamcut.stages.script_generation import Script, ScriptGenerator
from dreamcut.stages.synthesis import CreativeBrief, Synthesizer

if TYPE_CHECKING:
    from dreamcut.context import PipelineContext

logger = get_logger(__name__)

T = TypeVar("T")

PROGRESS_STARTED = 5
PROGRESS_QUERY_ANALYZED = 20
PROGRESS_ASSETS_BASE = 25
PROGRESS_ASSETS_SPAN = 0.35
PROGRESS_MERGING = 80
PROGRESS_SCRIPTED = 90

ASSET_PROGRESS_STARTED = 10


@dataclass
class AssetOutcome:
    asset: AssetRecord
    analysis: AssetAnalysis | None = None
    error: str | None = None


@dataclass
class PipelineRun:
    """Mutable state of one pipeline run."""

    query: QueryRecord
    assets: list[AssetRecord]
    started: float = field(default_factory=time.monotonic)
    stage: str = "init"
    models_used: list[str] = field(default_factory=list)
    asset_progress: dict[UUID, int] = field(default_factory=dict)

    def use_model(self, model: str | None) -> None:
        if model and model not in self.models_used:
            self.models_used.append(model)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


class PipelineOrchestrator:
    """Runs the staged pipeline for queries already created in the store."""

    def __init__(self, context: "PipelineContext") -> None:
        self.context = context
        self.settings = context.settings
        self.store = context.store
        self.query_analyzer = QueryAnalyzer(context.llm)
        self.asset_analyzer = AssetAnalyzer(
            context.llm,
            max_video_duration_seconds=self.settings.conflict_video_duration_seconds,
        )
        self.synthesizer = Synthesizer(
            context.llm,
            target_duration_seconds=self.settings.conflict_video_duration_seconds,
        )
        self.script_generator = ScriptGenerator(self.settings.script_narration_wpm)
        self.worker_id = f"{socket.gethostname()}:{os.getpid()}"

    async def run(self, query_id: UUID, token: CancellationToken | None = None) -> QueryRecord:
        """Run the pipeline to a terminal state and return the final query row.

        Failures are recorded on the query rather than raised, so callers
        always get the terminal record back.
        """
        snapshot = self.store.get_query(query_id)
        if snapshot.query.is_terminal:
            logger.info("pipeline_already_finished", query_id=str(query_id))
            return snapshot.query

        token = token or self.context.cancellations.register(query_id)
        run = PipelineRun(query=snapshot.query, assets=snapshot.assets)
        director = Director(self.store, query_id)

        with query_log_context(query_id):
            logger.info("pipeline_started", assets=len(run.assets))
            try:
                return await self._execute(run, director, token)
            except PipelineCancelledError as e:
                logger.info("pipeline_cancelled", stage=e.stage or run.stage)
                return self._fail(run, director, e.stage or run.stage, e.message)
            except DreamCutError as e:
                logger.warning(
                    "pipeline_failed",
                    stage=e.stage or run.stage,
                    error_code=e.error_code,
                    error=e.message,
                )
                return self._fail(run, director, e.stage or run.stage, e.message)
            except Exception as e:
                logger.exception("pipeline_crashed", stage=run.stage)
                return self._fail(run, director, run.stage, f"Internal error: {e}")
            finally:
                self.context.cancellations.release(query_id)

    async def _execute(
        self, run: PipelineRun, director: Director, token: CancellationToken
    ) -> QueryRecord:
        query_id = run.query.id

        director.started()
        self.store.update_query_progress(query_id, PROGRESS_STARTED, QueryStage.ANALYZING)

        # Query analysis
        self._checkpoint(run, token, "query_analysis")
        declared = run.query.intent if run.query.options.get("intent_source") != "inferred" else None
        query_analysis = await self._run_stage(
            run,
            token,
            "query_analysis",
            lambda: self.query_analyzer.analyze(run.query.user_prompt, declared),
        )
        run.use_model(query_analysis.model_used)
        self.store.update_query_progress(query_id, PROGRESS_QUERY_ANALYZED)
        director.query_understood(
            str(query_analysis.intent.primary_output_type), query_analysis.intent.confidence
        )

        # Asset analysis
        self._checkpoint(run, token, "asset_analysis")
        outcomes = await self._analyze_assets(run, director, token, query_analysis)
        analyses = [o.analysis for o in outcomes if o.analysis is not None]
        failed_ids = [str(o.asset.id) for o in outcomes if o.analysis is None]
        required = min(self.settings.min_successful_assets, len(run.assets))
        if len(analyses) < required:
            raise InsufficientAssetsError(
                f"Only {len(analyses)} of {len(run.assets)} assets were analyzed; "
                f"at least {required} required",
                stage="asset_analysis",
            )

        # Synthesis
        self._checkpoint(run, token, "synthesis")
        self.store.update_query_progress(query_id, PROGRESS_MERGING, QueryStage.MERGING)
        director.merging()
        brief = await self._run_stage(
            run,
            token,
            "synthesis",
            lambda: self.synthesizer.synthesize(query_analysis, analyses, failed_ids),
        )
        run.use_model(brief.model_used)
        for conflict in brief.conflicts:
            # Duration conflicts were already reported when the video finished
            if conflict.conflict_type != "duration_mismatch":
                director.conflict(conflict)
        director.brief_ready(brief)

        # Script generation
        script: Script | None = None
        if self._wants_script(run, brief):
            self._checkpoint(run, token, "script_generation")
            script = await self._run_stage(
                run,
                token,
                "script_generation",
                lambda: self.script_generator.generate(
                    brief,
                    query_analysis,
                    [a.type for a in run.assets],
                    profile_name=run.query.options.get("profile"),
                ),
            )
            self.store.update_query_progress(query_id, PROGRESS_SCRIPTED)

        self._checkpoint(run, token, "complete")
        director.ready()
        payload = self._payload(query_analysis, outcomes, brief, script)
        metrics = QueryMetrics(
            processing_time_ms=run.elapsed_ms,
            models_used=list(run.models_used),
            cost_estimate=round(
                self.settings.cost_per_query + self.settings.cost_per_asset * len(run.assets), 4
            ),
        )
        record = self.store.complete_query(query_id, payload, metrics)
        logger.info(
            "pipeline_completed",
            processing_time_ms=metrics.processing_time_ms,
            analyzed=len(analyses),
            failed=len(failed_ids),
        )
        return record

    # -------------------------------------------------------------------------
    # Asset fan-out
    # -------------------------------------------------------------------------

    async def _analyze_assets(
        self,
        run: PipelineRun,
        director: Director,
        token: CancellationToken,
        query_analysis: QueryAnalysis,
    ) -> list[AssetOutcome]:
        if not run.assets:
            return []

        run.asset_progress = {a.id: 100 if a.is_terminal else 0 for a in run.assets}
        finished = {a.id: self._resume_outcome(run, a) for a in run.assets if a.is_terminal}
        pending = [a for a in run.assets if a.id not in finished]
        if finished:
            # Redelivered task: assets settled by an earlier attempt keep their result
            logger.info("asset_fanout_resumed", finished=len(finished), pending=len(pending))

        pool_size = max(1, min(len(pending), self.settings.max_concurrent_asset_analyses))
        semaphore = asyncio.Semaphore(pool_size)
        logger.info("asset_fanout_started", assets=len(pending), pool_size=pool_size)

        results = await asyncio.gather(
            *(
                self._analyze_asset(run, director, token, asset, query_analysis, semaphore)
                for asset in pending
            ),
            return_exceptions=True,
        )

        for asset, result in zip(pending, results):
            if isinstance(result, BaseException):
                # _analyze_asset records its own failures; this is a store-level error
                raise result
            finished[asset.id] = result
        return [finished[a.id] for a in run.assets]

    def _resume_outcome(self, run: PipelineRun, asset: AssetRecord) -> AssetOutcome:
        if asset.status == AssetStatus.COMPLETED and asset.analysis:
            analysis = analysis_from_dict(asset.analysis)
            run.use_model(analysis.model_used)
            return AssetOutcome(asset=asset, analysis=analysis)
        return AssetOutcome(asset=asset, error=asset.error_message or "Analysis failed")

    def _abandon_assets(self, run: PipelineRun, message: str) -> None:
        """Settle assets a failed or cancelled run left unfinished."""
        try:
            assets = self.store.get_query(run.query.id).assets
        except PersistenceError as e:
            logger.warning("asset_settle_failed", error=e.message)
            return
        for asset in assets:
            if asset.is_terminal:
                continue
            try:
                self.store.update_asset_progress(
                    asset.id, 100, AssetPatch(status=AssetStatus.FAILED, error_message=message)
                )
            except PersistenceError as e:
                logger.warning("asset_settle_failed", asset_id=str(asset.id), error=e.message)

    async def _analyze_asset(
        self,
        run: PipelineRun,
        director: Director,
        token: CancellationToken,
        asset: AssetRecord,
        query_analysis: QueryAnalysis,
        semaphore: asyncio.Semaphore,
    ) -> AssetOutcome:
        async with semaphore:
            token.raise_if_cancelled("asset_analysis")
            started = time.monotonic()
            director.asset_started(asset)
            self.store.update_asset_progress(
                asset.id,
                ASSET_PROGRESS_STARTED,
                AssetPatch(status=AssetStatus.ANALYZING, worker_id=self.worker_id),
            )
            self._report_asset_progress(run, asset.id, ASSET_PROGRESS_STARTED)

            try:
                analysis = await self._run_stage(
                    run,
                    token,
                    "asset_analysis",
                    lambda: self.asset_analyzer.analyze(
                        str(asset.id), asset.descriptor(), query_analysis.normalized_prompt
                    ),
                )
            except PipelineCancelledError:
                raise
            except Exception as e:
                message = e.message if isinstance(e, DreamCutError) else str(e)
                if not isinstance(e, DreamCutError):
                    logger.exception("asset_analysis_crashed", asset_id=str(asset.id))
                else:
                    logger.warning(
                        "asset_analysis_failed",
                        asset_id=str(asset.id),
                        error_code=e.error_code,
                        error=message,
                    )
                self.store.update_asset_progress(
                    asset.id,
                    100,
                    AssetPatch(
                        status=AssetStatus.FAILED,
                        error_message=message,
                        processing_time_ms=int((time.monotonic() - started) * 1000),
                    ),
                )
                director.asset_failed(asset, message)
                self._report_asset_progress(run, asset.id, 100)
                return AssetOutcome(asset=asset, error=message)

            token.raise_if_cancelled("asset_analysis")
            run.use_model(analysis.model_used)
            self.store.update_asset_progress(
                asset.id,
                100,
                AssetPatch(
                    status=AssetStatus.COMPLETED,
                    analysis=analysis.to_dict(),
                    model_used=analysis.model_used,
                    processing_time_ms=int((time.monotonic() - started) * 1000),
                    quality_score=analysis.quality_score,
                    confidence_score=analysis.confidence,
                ),
            )
            director.asset_completed(asset, analysis)
            self._report_duration_conflict(director, asset, analysis, query_analysis)
            self._report_asset_progress(run, asset.id, 100)
            return AssetOutcome(asset=asset, analysis=analysis)

    def _report_asset_progress(self, run: PipelineRun, asset_id: UUID, progress: int) -> None:
        run.asset_progress[asset_id] = progress
        mean = sum(run.asset_progress.values()) / len(run.asset_progress)
        overall = PROGRESS_ASSETS_BASE + int(PROGRESS_ASSETS_SPAN * mean)
        self.store.update_query_progress(run.query.id, overall)

    def _report_duration_conflict(
        self,
        director: Director,
        asset: AssetRecord,
        analysis: AssetAnalysis,
        query_analysis: QueryAnalysis,
    ) -> None:
        if not isinstance(analysis, VideoAnalysis) or not analysis.duration_seconds:
            return
        target = (
            query_analysis.constraints.duration_seconds
            or self.settings.conflict_video_duration_seconds
        )
        if analysis.duration_seconds <= target:
            return
        director.duration_conflict(asset, analysis.duration_seconds, target)

    # -------------------------------------------------------------------------
    # Stage plumbing
    # -------------------------------------------------------------------------

    async def _run_stage(
        self,
        run: PipelineRun,
        token: CancellationToken,
        stage: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one stage call under its configured timeout, retrying only on timeouts."""
        timeout = self.settings.stage_timeout(stage)
        if stage != "asset_analysis":
            run.stage = stage
        attempts = max(1, self.settings.stage_retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(call(), timeout=timeout)
            except TimeoutError:
                error = UpstreamTimeoutError(
                    f"{stage} timed out after {timeout:g}s", stage=stage
                )
            except UpstreamTimeoutError as e:
                error = e
            except DreamCutError as e:
                e.stage = e.stage or stage
                raise

            if attempt == attempts:
                raise error
            delay = min(
                self.settings.stage_retry_backoff_seconds * 2 ** (attempt - 1),
                self.settings.stage_retry_backoff_max_seconds,
            )
            logger.warning(
                "stage_retry_scheduled",
                stage=stage,
                attempt=attempt,
                delay_seconds=delay,
                error=error.message,
            )
            await asyncio.sleep(delay)
            token.raise_if_cancelled(stage)
        raise AssertionError("unreachable")

    def _checkpoint(self, run: PipelineRun, token: CancellationToken, stage: str) -> None:
        """Stage boundary: honor local tokens and cancellations recorded in the store."""
        run.stage = stage
        token.raise_if_cancelled(stage)
        current = self.store.get_query(run.query.id).query
        if current.status != QueryStatus.PROCESSING:
            token.cancel(current.error_message or CANCELLED_MESSAGE)
            token.raise_if_cancelled(stage)

    def _wants_script(self, run: PipelineRun, brief: CreativeBrief) -> bool:
        if run.query.options.get("generate_script") is not None:
            return bool(run.query.options["generate_script"])
        return brief.unified_intent.primary_output_type == Intent.VIDEO

    def _fail(self, run: PipelineRun, director: Director, stage: str, message: str) -> QueryRecord:
        current = self.store.get_query(run.query.id).query
        if current.status == QueryStatus.PROCESSING:
            director.failed(stage, message)
            try:
                current = self.store.fail_query(run.query.id, message)
            except InvalidTransitionError:
                # Cancelled through the API in the meantime
                current = self.store.get_query(run.query.id).query
        self._abandon_assets(run, current.error_message or message)
        return current

    def _payload(
        self,
        query_analysis: QueryAnalysis,
        outcomes: list[AssetOutcome],
        brief: CreativeBrief,
        script: Script | None,
    ) -> dict[str, Any]:
        return {
            "query_analysis": query_analysis.to_dict(),
            "asset_analyses": [o.analysis.to_dict() for o in outcomes if o.analysis is not None],
            "failed_assets": [
                {"asset_id": str(o.asset.id), "error": o.error}
                for o in outcomes
                if o.analysis is None
            ],
            "creative_brief": brief.to_dict(),
            "script": script.to_dict() if script is not None else None,
            "summary": {
                "title": brief.project_title,
                "intent": str(brief.unified_intent.primary_output_type),
                "alignment_score": brief.alignment_score,
                "completeness_score": brief.completeness_score,
                "asset_utilization": brief.utilization_counts,
                "gaps": len(brief.gaps),
                "conflicts": len(brief.conflicts),
            },
        }
