"""Tests for the pipeline orchestrator."""

import asyncio
from collections import defaultdict

import httpx
import pytest

from dreamcut.adapters.llm.stub import StubLLMProvider
from dreamcut.context import build_context
from dreamcut.domain.enums import (
    AssetStatus,
    Intent,
    MediaType,
    MessageType,
    QueryStage,
    QueryStatus,
)
from dreamcut.domain.models import AssetDescriptor, AssetPatch
from dreamcut.errors import PersistenceError
from dreamcut.services.cancellation import CANCELLED_MESSAGE
from dreamcut.services.director import Director
from dreamcut.services.orchestrator import PipelineOrchestrator
from dreamcut.stages.asset_analysis import AssetAnalyzer
from dreamcut.store.memory import InMemoryProgressStore

PROMPT = "Make a video about ocean waves"


def asset(name: str, media_type: MediaType, **kwargs) -> AssetDescriptor:
    return AssetDescriptor(url=f"https://cdn.example.com/{name}", type=media_type, **kwargs)


def mixed_assets() -> list[AssetDescriptor]:
    return [
        asset("wave.jpg", MediaType.IMAGE, description="a big wave"),
        asset("surf.mp4", MediaType.VIDEO, description="surfing", metadata={"duration_seconds": 20}),
        asset("voice.mp3", MediaType.AUDIO, description="voiceover"),
    ]


def make_context(test_settings, store, notifier, llm, **overrides):
    settings = test_settings.model_copy(update=overrides)
    return build_context(settings, store=store, notifier=notifier, llm=llm)


def create(store, prompt=PROMPT, intent=Intent.VIDEO, assets=None, **options):
    options.setdefault("intent_source", "user")
    return store.create_query("user-1", prompt, intent, assets or [], options)


def system_text(messages) -> str:
    first = messages[0]
    return (getattr(first, "content", None) or getattr(first, "text", "")).lower()


class BrokenAssetLLM(StubLLMProvider):
    """Fails analysis for any asset whose filename mentions "broken"."""

    def _respond(self, system, user, json_mode):
        if "asset analyst" in system.lower() and "broken" in user:
            raise ValueError("corrupt media")
        return super()._respond(system, user, json_mode)


class SlowQueryLLM(StubLLMProvider):
    """Hangs on the first `slow_calls` query analysis calls."""

    def __init__(self, slow_calls: int) -> None:
        self.slow_calls = slow_calls
        self.query_calls = 0

    async def complete(self, messages, temperature=0.7, max_tokens=4096, json_mode=False):
        if "query analyst" in system_text(messages):
            self.query_calls += 1
            if self.query_calls <= self.slow_calls:
                await asyncio.sleep(1)
        return await super().complete(messages, temperature, max_tokens, json_mode)


class CountingAssetLLM(StubLLMProvider):
    """Tracks how many asset analyses run at the same time."""

    def __init__(self) -> None:
        self.active = 0
        self.max_active = 0

    async def complete(self, messages, temperature=0.7, max_tokens=4096, json_mode=False):
        if "asset analyst" in system_text(messages):
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1
        return await super().complete(messages, temperature, max_tokens, json_mode)


class BlockingAssetLLM(StubLLMProvider):
    """Holds asset analysis until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, messages, temperature=0.7, max_tokens=4096, json_mode=False):
        if "asset analyst" in system_text(messages):
            self.started.set()
            await self.release.wait()
        return await super().complete(messages, temperature, max_tokens, json_mode)


class CrashingDirectorLLM(StubLLMProvider):
    """Raises an unexpected error from the creative direction call."""

    async def complete(self, messages, temperature=0.7, max_tokens=4096, json_mode=False):
        if "creative director" in system_text(messages):
            raise RuntimeError("boom")
        return await super().complete(messages, temperature, max_tokens, json_mode)


class TimeoutAssetLLM(StubLLMProvider):
    """Network timeout for any asset whose filename mentions "broken"."""

    def _respond(self, system, user, json_mode):
        if "asset analyst" in system.lower() and "broken" in user:
            raise httpx.ConnectTimeout("connect timed out")
        return super()._respond(system, user, json_mode)


class RecordingAssetLLM(StubLLMProvider):
    """Remembers the user prompt of every asset analysis call."""

    def __init__(self) -> None:
        self.asset_prompts: list[str] = []

    def _respond(self, system, user, json_mode):
        if "asset analyst" in system.lower():
            self.asset_prompts.append(user)
        return super()._respond(system, user, json_mode)


class FailingMessageStore(InMemoryProgressStore):
    """Rejects narration messages of the given types."""

    def __init__(self, notifier, failing_types) -> None:
        super().__init__(notifier)
        self.failing_types = set(failing_types)

    def add_message(self, query_id, type, content, emoji=None, asset_id=None, data=None):
        if type in self.failing_types:
            raise PersistenceError("add_message failed: connection reset")
        return super().add_message(
            query_id, type, content, emoji=emoji, asset_id=asset_id, data=data
        )


class TestHappyPath:
    """Tests for a pipeline run where every stage succeeds."""

    @pytest.mark.asyncio
    async def test_completes_with_payload(self, pipeline_context, store) -> None:
        query_id = create(store, assets=mixed_assets())

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert record.stage == QueryStage.DONE
        assert record.progress == 100
        assert set(record.payload) == {
            "query_analysis",
            "asset_analyses",
            "failed_assets",
            "creative_brief",
            "script",
            "summary",
        }
        assert len(record.payload["asset_analyses"]) == 3
        assert record.payload["failed_assets"] == []
        assert record.payload["script"] is not None
        assert record.payload["summary"]["intent"] == "video"
        assert record.models_used == ["stub-model"]
        assert record.cost_estimate == 0.07
        assert record.processing_time_ms is not None

    @pytest.mark.asyncio
    async def test_assets_and_messages(self, pipeline_context, store) -> None:
        query_id = create(store, assets=mixed_assets())

        await PipelineOrchestrator(pipeline_context).run(query_id)
        snapshot = store.get_query(query_id)

        assert all(a.status == AssetStatus.COMPLETED for a in snapshot.assets)
        assert all(a.progress == 100 and a.analyzed_at for a in snapshot.assets)
        assert all(a.model_used == "stub-model" for a in snapshot.assets)

        messages = snapshot.messages
        types = [m.type for m in messages]
        assert messages[0].content == "Got your request. Let's break it down..."
        assert messages[-1].content == "Ready for production! 🚀"
        assert types.count(MessageType.ASSET_START) == 3
        assert types.count(MessageType.ASSET_COMPLETE) == 3
        assert types.count(MessageType.MERGE) == 1
        assert MessageType.SUGGESTION in types
        assert MessageType.ERROR not in types

    @pytest.mark.asyncio
    async def test_progress_events(self, pipeline_context, store, notifier) -> None:
        query_id = create(store, assets=mixed_assets())
        query_progress: list[int] = []
        asset_updates: dict[str, list[tuple[str, int]]] = defaultdict(list)
        notifier.subscribe(
            query_id,
            on_query_update=lambda e: query_progress.append(e.record["progress"]),
            on_asset_update=lambda e: asset_updates[e.record["id"]].append(
                (e.record["status"], e.record["progress"])
            ),
        )

        await PipelineOrchestrator(pipeline_context).run(query_id)

        assert query_progress == sorted(query_progress)
        assert query_progress[-1] == 100
        for checkpoint in (5, 20, 80, 90):
            assert checkpoint in query_progress
        assert all(25 <= p <= 60 for p in query_progress if 20 < p < 80)
        assert len(asset_updates) == 3
        for updates in asset_updates.values():
            assert updates == [("analyzing", 10), ("completed", 100)]

    @pytest.mark.asyncio
    async def test_zero_assets(self, pipeline_context, store) -> None:
        query_id = create(store, prompt="Design a poster for a jazz night", intent=Intent.IMAGE)

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert record.payload["asset_analyses"] == []
        assert record.payload["script"] is None
        gaps = record.payload["creative_brief"]["gaps"]
        assert any(g["category"] == "content" and g["severity"] == "critical" for g in gaps)
        assert record.cost_estimate == 0.01

    @pytest.mark.asyncio
    async def test_long_video_reports_one_conflict(self, pipeline_context, store) -> None:
        video = asset("surf.mp4", MediaType.VIDEO, metadata={"duration_seconds": 45})
        query_id = create(store, assets=[video])

        await PipelineOrchestrator(pipeline_context).run(query_id)

        conflicts = [
            m for m in store.get_query(query_id).messages if m.type == MessageType.CONFLICT
        ]
        assert len(conflicts) == 1
        assert conflicts[0].data["conflict_type"] == "duration_mismatch"
        assert conflicts[0].data["target_seconds"] == 30.0

    @pytest.mark.asyncio
    async def test_already_finished_query(self, pipeline_context, store) -> None:
        query_id = create(store)
        store.fail_query(query_id, "Cancelled")

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert store.get_query(query_id).messages == []


class TestIntentAndScript:
    """Tests for intent sourcing and script gating."""

    @pytest.mark.asyncio
    async def test_inferred_intent_is_reanalyzed(self, pipeline_context, store) -> None:
        query_id = create(store, intent=Intent.IMAGE, intent_source="inferred")

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.payload["summary"]["intent"] == "video"
        assert record.payload["script"] is not None

    @pytest.mark.asyncio
    async def test_declared_intent_wins(self, pipeline_context, store) -> None:
        query_id = create(store, intent=Intent.IMAGE)

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.payload["summary"]["intent"] == "image"
        assert record.payload["script"] is None

    @pytest.mark.asyncio
    async def test_script_option_overrides_intent(self, pipeline_context, store) -> None:
        skipped = create(store, generate_script=False)
        forced = create(
            store, prompt="Design a poster", intent=Intent.IMAGE, generate_script=True
        )
        orchestrator = PipelineOrchestrator(pipeline_context)

        assert (await orchestrator.run(skipped)).payload["script"] is None
        assert (await orchestrator.run(forced)).payload["script"] is not None

    @pytest.mark.asyncio
    async def test_requested_profile(self, pipeline_context, store) -> None:
        query_id = create(store, profile="documentary_storytelling")

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.payload["script"]["profile"] == "documentary_storytelling"


class TestFailures:
    """Tests for partial and fatal failures."""

    @pytest.mark.asyncio
    async def test_failed_asset_is_isolated(self, test_settings, store, notifier) -> None:
        context = make_context(test_settings, store, notifier, BrokenAssetLLM())
        query_id = create(
            store,
            assets=[
                asset("wave.jpg", MediaType.IMAGE, description="a big wave"),
                asset("broken.png", MediaType.IMAGE),
            ],
        )

        record = await PipelineOrchestrator(context).run(query_id)
        snapshot = store.get_query(query_id)

        assert record.status == QueryStatus.COMPLETED
        broken = next(a for a in snapshot.assets if a.filename == "broken.png")
        assert broken.status == AssetStatus.FAILED
        assert broken.progress == 100
        assert broken.error_message == "corrupt media"
        assert record.payload["failed_assets"] == [
            {"asset_id": str(broken.id), "error": "corrupt media"}
        ]
        assert record.payload["creative_brief"]["failed_asset_ids"] == [str(broken.id)]
        errors = [m for m in snapshot.messages if m.type == MessageType.ERROR]
        assert len(errors) == 1
        assert errors[0].asset_id == broken.id

    @pytest.mark.asyncio
    async def test_minimum_successful_assets(self, test_settings, store, notifier) -> None:
        context = make_context(
            test_settings, store, notifier, BrokenAssetLLM(), min_successful_assets=2
        )
        query_id = create(
            store,
            assets=[asset("wave.jpg", MediaType.IMAGE), asset("broken.png", MediaType.IMAGE)],
        )

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert record.error_message.startswith("Only 1 of 2 assets were analyzed")
        assert record.payload is None

    @pytest.mark.asyncio
    async def test_threshold_capped_by_asset_count(self, test_settings, store, notifier) -> None:
        context = make_context(
            test_settings, store, notifier, StubLLMProvider(), min_successful_assets=5
        )
        query_id = create(store, assets=[asset("wave.jpg", MediaType.IMAGE)])

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_query(self, test_settings, store, notifier) -> None:
        context = make_context(test_settings, store, notifier, CrashingDirectorLLM())
        query_id = create(store)

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert record.error_message == "Internal error: boom"
        last = store.get_query(query_id).messages[-1]
        assert last.type == MessageType.ERROR
        assert last.content == "Analysis failed at synthesis: Internal error: boom"

    @pytest.mark.asyncio
    async def test_network_timeout_fails_one_video(self, test_settings, store, notifier) -> None:
        context = make_context(test_settings, store, notifier, TimeoutAssetLLM())
        query_id = create(
            store,
            assets=[
                asset("surf.mp4", MediaType.VIDEO, metadata={"duration_seconds": 20}),
                asset("broken.mp4", MediaType.VIDEO, metadata={"duration_seconds": 12}),
            ],
        )

        record = await PipelineOrchestrator(context).run(query_id)
        surf, broken = store.get_query(query_id).assets

        assert record.status == QueryStatus.COMPLETED
        assert surf.status == AssetStatus.COMPLETED
        assert broken.status == AssetStatus.FAILED
        assert broken.error_message
        assert "timed out" in broken.error_message
        assert len(record.payload["asset_analyses"]) == 1
        assert record.payload["failed_assets"][0]["asset_id"] == str(broken.id)


class TestNarrationWrites:
    """Tests for narration writes that the store rejects."""

    @pytest.mark.asyncio
    async def test_rejected_asset_message_is_not_fatal(self, test_settings, notifier) -> None:
        store = FailingMessageStore(notifier, [MessageType.ASSET_COMPLETE])
        context = make_context(test_settings, store, notifier, StubLLMProvider())
        query_id = create(store, assets=mixed_assets())

        record = await PipelineOrchestrator(context).run(query_id)
        snapshot = store.get_query(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert all(a.status == AssetStatus.COMPLETED for a in snapshot.assets)
        assert MessageType.ASSET_COMPLETE not in [m.type for m in snapshot.messages]
        assert snapshot.messages[-1].type == MessageType.FINAL

    @pytest.mark.asyncio
    async def test_rejected_error_message_still_fails_query(self, test_settings, notifier) -> None:
        store = FailingMessageStore(notifier, [MessageType.ERROR])
        context = make_context(test_settings, store, notifier, CrashingDirectorLLM())
        query_id = create(store)

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert record.error_message == "Internal error: boom"
        assert store.get_query(query_id).query.status == QueryStatus.FAILED

    @pytest.mark.asyncio
    async def test_rejected_error_message_on_cancel(self, test_settings, notifier) -> None:
        store = FailingMessageStore(notifier, [MessageType.ERROR, MessageType.STATUS])
        context = make_context(test_settings, store, notifier, StubLLMProvider())
        query_id = create(store, assets=[asset("voice.mp3", MediaType.AUDIO)])
        context.cancellations.register(query_id).cancel()

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert record.error_message == CANCELLED_MESSAGE
        assert store.get_query(query_id).messages == []


class TestTimeouts:
    """Tests for stage timeouts and retries."""

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, test_settings, store, notifier) -> None:
        llm = SlowQueryLLM(slow_calls=1)
        context = make_context(
            test_settings, store, notifier, llm, query_analysis_timeout_seconds=0.05
        )
        query_id = create(store)

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert llm.query_calls == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, test_settings, store, notifier) -> None:
        llm = SlowQueryLLM(slow_calls=10)
        context = make_context(
            test_settings,
            store,
            notifier,
            llm,
            query_analysis_timeout_seconds=0.05,
            stage_retry_attempts=2,
        )
        query_id = create(store)

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert record.error_message == "query_analysis timed out after 0.05s"
        assert llm.query_calls == 2


class TestConcurrency:
    """Tests for the bounded asset fan-out."""

    @pytest.mark.asyncio
    async def test_pool_size_is_bounded(self, test_settings, store, notifier) -> None:
        llm = CountingAssetLLM()
        context = make_context(
            test_settings, store, notifier, llm, max_concurrent_asset_analyses=2
        )
        assets = [asset(f"clip-{i}.mp3", MediaType.AUDIO) for i in range(5)]
        query_id = create(store, assets=assets)

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert llm.max_active == 2


class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, pipeline_context, store) -> None:
        query_id = create(store, assets=[asset("wave.jpg", MediaType.IMAGE)])
        pipeline_context.cancellations.register(query_id).cancel()

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.status == QueryStatus.FAILED
        assert record.error_message == CANCELLED_MESSAGE
        assert query_id not in pipeline_context.cancellations
        never_started = store.get_query(query_id).assets[0]
        assert never_started.status == AssetStatus.FAILED
        assert never_started.error_message == CANCELLED_MESSAGE

    @pytest.mark.asyncio
    async def test_cancel_during_asset_analysis(self, test_settings, store, notifier) -> None:
        llm = BlockingAssetLLM()
        context = make_context(test_settings, store, notifier, llm)
        query_id = create(store, assets=[asset("voice.mp3", MediaType.AUDIO)])

        task = asyncio.create_task(PipelineOrchestrator(context).run(query_id))
        await asyncio.wait_for(llm.started.wait(), timeout=5)

        # What the cancel endpoint does
        assert context.cancellations.cancel(query_id) is True
        Director(store, query_id).cancelled()
        store.fail_query(query_id, CANCELLED_MESSAGE)
        llm.release.set()
        record = await asyncio.wait_for(task, timeout=5)

        snapshot = store.get_query(query_id)
        contents = [m.content for m in snapshot.messages]
        assert record.status == QueryStatus.FAILED
        assert record.error_message == CANCELLED_MESSAGE
        assert contents[-1] == "Cancelled at your request."
        assert MessageType.MERGE not in [m.type for m in snapshot.messages]
        assert snapshot.assets[0].status == AssetStatus.FAILED
        assert snapshot.assets[0].error_message == CANCELLED_MESSAGE
        assert snapshot.assets[0].is_terminal

    @pytest.mark.asyncio
    async def test_cancel_settles_queued_assets(self, test_settings, store, notifier) -> None:
        llm = BlockingAssetLLM()
        context = make_context(
            test_settings, store, notifier, llm, max_concurrent_asset_analyses=1
        )
        assets = [asset(f"clip-{i}.mp3", MediaType.AUDIO) for i in range(3)]
        query_id = create(store, assets=assets)

        task = asyncio.create_task(PipelineOrchestrator(context).run(query_id))
        await asyncio.wait_for(llm.started.wait(), timeout=5)
        context.cancellations.cancel(query_id)
        llm.release.set()
        record = await asyncio.wait_for(task, timeout=5)

        snapshot = store.get_query(query_id)
        assert record.status == QueryStatus.FAILED
        assert [a.status for a in snapshot.assets] == [AssetStatus.FAILED] * 3
        assert {a.error_message for a in snapshot.assets} == {CANCELLED_MESSAGE}
        assert all(a.progress == 100 for a in snapshot.assets)


class TestRedelivery:
    """Tests for a task delivered again after its assets were partly settled."""

    @pytest.mark.asyncio
    async def test_settled_assets_are_not_reanalyzed(self, test_settings, store, notifier) -> None:
        llm = RecordingAssetLLM()
        context = make_context(test_settings, store, notifier, llm)
        query_id = create(
            store,
            assets=[
                asset("wave.jpg", MediaType.IMAGE, description="a big wave"),
                asset("surf.mp4", MediaType.VIDEO, metadata={"duration_seconds": 20}),
                asset("broken.png", MediaType.IMAGE),
            ],
        )
        done, _, failed = store.get_query(query_id).assets
        analysis = await AssetAnalyzer(StubLLMProvider()).analyze(
            str(done.id), done.descriptor(), PROMPT
        )
        store.update_asset_progress(
            done.id,
            100,
            AssetPatch(
                status=AssetStatus.COMPLETED,
                analysis=analysis.to_dict(),
                model_used=analysis.model_used,
            ),
        )
        store.update_asset_progress(
            failed.id, 100, AssetPatch(status=AssetStatus.FAILED, error_message="corrupt media")
        )

        record = await PipelineOrchestrator(context).run(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert len(llm.asset_prompts) == 1
        assert "surf.mp4" in llm.asset_prompts[0]
        assert len(record.payload["asset_analyses"]) == 2
        assert record.payload["failed_assets"] == [
            {"asset_id": str(failed.id), "error": "corrupt media"}
        ]

    @pytest.mark.asyncio
    async def test_all_assets_settled(self, pipeline_context, store) -> None:
        query_id = create(store, assets=[asset("wave.jpg", MediaType.IMAGE)])
        only = store.get_query(query_id).assets[0]
        analysis = await AssetAnalyzer(StubLLMProvider()).analyze(
            str(only.id), only.descriptor(), PROMPT
        )
        store.update_asset_progress(
            only.id, 100, AssetPatch(status=AssetStatus.COMPLETED, analysis=analysis.to_dict())
        )

        record = await PipelineOrchestrator(pipeline_context).run(query_id)

        assert record.status == QueryStatus.COMPLETED
        assert [a["asset_id"] for a in record.payload["asset_analyses"]] == [str(only.id)]
        assert record.payload["failed_assets"] == []


class TestLateSubscriber:
    """Tests for consumers that subscribe while the pipeline runs."""

    @pytest.mark.asyncio
    async def test_snapshot_plus_events_reach_final_state(
        self, pipeline_context, store, notifier
    ) -> None:
        query_id = create(store, assets=mixed_assets())
        late_events: list = []
        resync: dict = {}

        def on_message(event) -> None:
            if event.record["type"] == "asset_start" and not resync:
                notifier.subscribe(query_id, on_query_update=late_events.append)
                resync["progress"] = store.get_query(query_id).query.progress

        notifier.subscribe(query_id, on_new_message=on_message)

        await PipelineOrchestrator(pipeline_context).run(query_id)

        progress = [e.record["progress"] for e in late_events]
        assert resync["progress"] == 20
        assert 5 not in progress
        assert all(p >= resync["progress"] for p in progress)
        assert late_events[-1].record["status"] == "completed"
        assert late_events[-1].record["progress"] == 100
