from __future__ import annotations

import logging
import signal
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone

from recipeflow.app.domain.errors import ConfigurationError, RecordStoreError
from recipeflow.app.domain.models import ChangeEvent, RecordFilter, StageName
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.storage.base import StorageProvider
from recipeflow.app.services.change_notifier import ChangeNotifier
from recipeflow.app.services.enrichment import EnrichmentService
from recipeflow.app.services.extraction_stage import ExtractionStage
from recipeflow.app.services.failure_stage import FailureStage
from recipeflow.app.services.image_stage import ImageStage
from recipeflow.app.services.nutrition_stage import NutritionStage
from recipeflow.app.services.orchestrator import Orchestrator
from recipeflow.app.services.trigger_router import StageTriggerRouter
from recipeflow.services.gemini_client import GeminiClient
from recipeflow.services.image_generator import ImageGenerator
from recipeflow.services.ocr import PhotoTextExtractor
from workers.pipeline.config import WorkerConfig, get_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("pipeline-worker")


class PipelineWorker:
    """
    Watches the record store and runs pipeline stages as records change.

    Each iteration polls the change notifier once, routes every change
    through the trigger router and submits the resulting stages to a thread
    pool. A (record, stage) pair that is already running is not submitted
    again.
    """

    def __init__(
        self,
        config: WorkerConfig,
        notifier: ChangeNotifier,
        router: StageTriggerRouter,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.config = config
        self.notifier = notifier
        self.router = router
        self.executor = executor
        self.running = False
        self.stages_started = 0
        self.last_event_time: datetime | None = None
        self._in_flight: dict[tuple[str, StageName], Future] = {}
        self._lock = threading.Lock()
        self._wake = threading.Event()

    def start(self) -> None:
        self._validate_configuration()
        self._setup_signal_handlers()
        self.run()

    def run(self) -> None:
        """Run the poll loop until stopped. Safe to call off the main thread."""
        self._log_startup_info()
        if self.executor is None:
            self.executor = ThreadPoolExecutor(
                max_workers=self.config.max_concurrent_stages,
                thread_name_prefix="stage",
            )
        self.running = True
        try:
            self._run_main_loop()
        finally:
            self._shutdown()

    def stop(self) -> None:
        self.running = False
        self._wake.set()

    def _validate_configuration(self) -> None:
        errors = self.config.validate()
        if errors:
            raise ConfigurationError(errors)

    def _setup_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown_signal)
        signal.signal(signal.SIGINT, self._handle_shutdown_signal)

    def _log_startup_info(self) -> None:
        logger.info(
            "Starting pipeline worker: id=%s, poll_interval=%.1fs, concurrency=%d, auto_enrich=%s",
            self.config.worker_id,
            self.config.poll_interval_seconds,
            self.config.max_concurrent_stages,
            self.config.auto_enrich,
        )

    def _run_main_loop(self) -> None:
        empty_polls = 0
        poll_interval = float(self.config.poll_interval_seconds)

        while self.running:
            events = self._poll_changes()

            if events:
                empty_polls = 0
                poll_interval = float(self.config.poll_interval_seconds)
                self.last_event_time = datetime.now(timezone.utc)
                for event in events:
                    self.handle_event(event)

                if self._reached_max_events():
                    break
            else:
                empty_polls += 1
                poll_interval = self._calculate_backoff_interval(poll_interval)
                logger.debug(
                    "No changes, sleeping %.1fs (empty_polls=%d)",
                    poll_interval,
                    empty_polls,
                )

            self._wake.wait(poll_interval)

    def _poll_changes(self) -> list[ChangeEvent]:
        try:
            return self.notifier.poll_once()
        except RecordStoreError as error:
            logger.warning("Polling the record store failed: %s", error)
            return []

    def handle_event(self, event: ChangeEvent) -> list[StageName]:
        stages = self.router.route(event)
        return [stage for stage in stages if self.submit(event.record_id, stage) is not None]

    def submit(self, record_id: str, stage: StageName) -> Future | None:
        key = (record_id, stage)
        with self._lock:
            if key in self._in_flight:
                logger.debug("Stage already running, trigger dropped: id=%s, stage=%s", record_id, stage.value)
                return None
            future = self.executor.submit(self._run_stage, record_id, stage)
            self._in_flight[key] = future
            self.stages_started += 1

        logger.info("Stage submitted: id=%s, stage=%s", record_id, stage.value)
        future.add_done_callback(lambda _: self._finish(key))
        return future

    def _run_stage(self, record_id: str, stage: StageName) -> bool:
        if self.router.dispatch_direct(record_id, stage):
            return True
        # Re-emitted on the next poll; the stage re-checks its own preconditions.
        logger.warning("Stage did not complete, will retry: id=%s, stage=%s", record_id, stage.value)
        self.notifier.forget(record_id)
        return False

    def _finish(self, key: tuple[str, StageName]) -> None:
        with self._lock:
            self._in_flight.pop(key, None)

    def in_flight(self) -> set[tuple[str, StageName]]:
        with self._lock:
            return set(self._in_flight)

    def _reached_max_events(self) -> bool:
        if self.config.max_events_per_run <= 0:
            return False

        if self.stages_started >= self.config.max_events_per_run:
            logger.info(
                "Reached max stage runs per run (%d), shutting down",
                self.config.max_events_per_run,
            )
            return True
        return False

    def _calculate_backoff_interval(self, current_interval: float) -> float:
        return min(
            current_interval * 1.5,
            float(self.config.max_poll_interval_seconds),
        )

    def _handle_shutdown_signal(self, signum: int, frame: object) -> None:
        logger.info("Received shutdown signal %d", signum)
        self.stop()

    def _shutdown(self) -> None:
        logger.info("Worker shutting down: stages_started=%d", self.stages_started)

        with self._lock:
            pending = list(self._in_flight.values())
        if pending:
            logger.info("Waiting for %d running stage(s) to complete", len(pending))
            wait(pending, timeout=self.config.graceful_shutdown_timeout_seconds)

        if self.executor is not None:
            self.executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Worker shutdown complete")


def build_router(
    orchestrator: Orchestrator,
    enrichment: EnrichmentService,
    auto_enrich: bool = True,
) -> StageTriggerRouter:
    router = StageTriggerRouter(auto_enrich=auto_enrich)
    router.register(StageName.EXTRACTION, orchestrator.run)
    router.register(StageName.NUTRITION, lambda record_id: enrichment.run_stage(record_id, StageName.NUTRITION))
    router.register(StageName.IMAGE, lambda record_id: enrichment.run_stage(record_id, StageName.IMAGE))
    return router


def build_pipeline(
    config: WorkerConfig,
    store: RecipeStore,
    storage: StorageProvider,
    gemini: GeminiClient,
    generator: ImageGenerator,
) -> tuple[ChangeNotifier, StageTriggerRouter]:
    failure_stage = FailureStage(store)
    extraction_stage = ExtractionStage(
        store,
        gemini,
        failure_stage,
        min_text_length=config.min_source_text_length,
    )
    orchestrator = Orchestrator(
        store=store,
        extraction_stage=extraction_stage,
        failure_stage=failure_stage,
        photo_extractor=PhotoTextExtractor(storage, gemini),
    )
    enrichment = EnrichmentService(
        store=store,
        nutrition_stage=NutritionStage(store, gemini),
        image_stage=ImageStage(store, storage, generator),
    )
    notifier = ChangeNotifier(store, RecordFilter(limit=config.watch_limit))
    return notifier, build_router(orchestrator, enrichment, auto_enrich=config.auto_enrich)


def create_default_dependencies(config: WorkerConfig) -> tuple[
    RecipeStore,
    StorageProvider,
    GeminiClient,
    ImageGenerator,
]:
    from supabase import create_client

    from recipeflow.app.infra.db.supabase_recipe_store import SupabaseRecipeStore
    from recipeflow.app.infra.storage.r2_provider import R2StorageProvider

    store: RecipeStore = SupabaseRecipeStore(client=create_client(config.supabase_url, config.supabase_key))

    storage_provider = R2StorageProvider(
        account_id=config.r2_account_id,
        access_key_id=config.r2_access_key_id,
        secret_access_key=config.r2_secret_access_key,
        bucket_name=config.r2_bucket_name,
        public_url=config.r2_public_url or None,
    )
    gemini = GeminiClient(api_key=config.gemini_api_key, model_name=config.gemini_model)
    generator = ImageGenerator(api_key=config.gemini_api_key, model_name=config.gemini_image_model)

    return store, storage_provider, gemini, generator


def main() -> None:
    config = get_config()
    errors = config.validate()
    if errors:
        raise ConfigurationError(errors)

    store, storage, gemini, generator = create_default_dependencies(config)
    notifier, router = build_pipeline(config, store, storage, gemini, generator)

    worker = PipelineWorker(config=config, notifier=notifier, router=router)
    worker.start()


if __name__ == "__main__":
    main()
