"""
Recipe processing workflow.

PROCESS_RECIPE chooses a branch from the record's source (url, photo or
pasted text). Each branch is an ordered list of steps: acquire the raw text,
then generate the recipe. Retries are declared per step; the stages
themselves never retry.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from recipeflow.app.domain.errors import MissingSourceError
from recipeflow.app.domain.models import Outcome, RecipeRecord, StageName, StructuredContent
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.services.extraction_stage import ExtractionInput, ExtractionStage
from recipeflow.app.services.failure_stage import FailureStage
from recipeflow.services.errors import NetworkTimeoutError, RateLimitedError
from recipeflow.services.fetcher import extract_text_from_url
from recipeflow.services.ocr import PhotoTextExtractor

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    record: RecipeRecord
    text: Optional[str] = None
    outcome: Optional[Outcome[StructuredContent]] = None


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[["Orchestrator", RunState], None]
    max_attempts: int = 1
    retry_on: tuple[type[BaseException], ...] = ()
    retry_delay_seconds: float = 1.0


@dataclass(frozen=True)
class Branch:
    name: str
    applies: Callable[[RecipeRecord], bool]
    steps: tuple[Step, ...]


@dataclass(frozen=True)
class Workflow:
    name: str
    branches: tuple[Branch, ...] = field(default_factory=tuple)

    def choose(self, record: RecipeRecord) -> Optional[Branch]:
        for branch in self.branches:
            if branch.applies(record):
                return branch
        return None


def _acquire_url_text(orchestrator: "Orchestrator", state: RunState) -> None:
    state.text = orchestrator.fetch_url_text(state.record.source.url or "")


def _acquire_photo_text(orchestrator: "Orchestrator", state: RunState) -> None:
    state.text = orchestrator.photo_extractor.extract_text(state.record.source.picture_submission_uuid or "")


def _acquire_pasted_text(orchestrator: "Orchestrator", state: RunState) -> None:
    state.text = state.record.source.text


def _generate_recipe(orchestrator: "Orchestrator", state: RunState) -> None:
    state.outcome = orchestrator.extraction_stage.run(
        ExtractionInput(
            record_id=state.record.id,
            raw_source_text=state.text,
            language=state.record.source.language,
        )
    )


GENERATE_RECIPE = Step("generate_recipe", _generate_recipe)

PROCESS_RECIPE = Workflow(
    name="process-recipe",
    branches=(
        Branch(
            name="url",
            applies=lambda record: bool(record.source.url),
            steps=(
                Step(
                    "acquire_url_text",
                    _acquire_url_text,
                    max_attempts=3,
                    retry_on=(NetworkTimeoutError, RateLimitedError),
                ),
                GENERATE_RECIPE,
            ),
        ),
        Branch(
            name="photo",
            applies=lambda record: bool(record.source.picture_submission_uuid),
            steps=(
                Step(
                    "acquire_photo_text",
                    _acquire_photo_text,
                    max_attempts=2,
                    retry_on=(RateLimitedError,),
                    retry_delay_seconds=5.0,
                ),
                GENERATE_RECIPE,
            ),
        ),
        Branch(
            name="text",
            applies=lambda record: bool(record.source.text and record.source.text.strip()),
            steps=(Step("acquire_pasted_text", _acquire_pasted_text), GENERATE_RECIPE),
        ),
    ),
)


class Orchestrator:
    """Runs a workflow for one PENDING recipe and routes dead ends to the FailureStage."""

    def __init__(
        self,
        store: RecipeStore,
        extraction_stage: ExtractionStage,
        failure_stage: FailureStage,
        photo_extractor: PhotoTextExtractor,
        fetch_url_text: Callable[[str], str] = extract_text_from_url,
        workflow: Workflow = PROCESS_RECIPE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.extraction_stage = extraction_stage
        self.failure_stage = failure_stage
        self.photo_extractor = photo_extractor
        self.fetch_url_text = fetch_url_text
        self.workflow = workflow
        self._sleep = sleep

    def run(self, record_id: str) -> Outcome[StructuredContent]:
        """
        Process one PENDING record. A store read failure raises RecordStoreError
        and leaves the record untouched, so the caller can schedule a retry.
        """
        record = self.store.get(record_id)

        if record is None:
            return Outcome.skipped(StageName.EXTRACTION, record_id, "record not found")
        if record.is_terminal:
            return Outcome.skipped(StageName.EXTRACTION, record_id, f"record is {record.status.value}")

        branch = self.workflow.choose(record)
        if branch is None:
            error = MissingSourceError(record_id)
            logger.warning("%s", error)
            self.failure_stage.run(record_id)
            return Outcome.failure(StageName.EXTRACTION, record_id, str(error))

        logger.info("Processing recipe: id=%s, workflow=%s, branch=%s", record_id, self.workflow.name, branch.name)
        state = RunState(record=record)
        for step in branch.steps:
            try:
                self._run_step(step, state)
            except Exception as err:
                logger.warning("Step failed: id=%s, step=%s, error=%s", record_id, step.name, err)
                self.failure_stage.run(record_id)
                return Outcome.failure(StageName.EXTRACTION, record_id, f"{step.name}: {err}")

        if state.outcome is None:
            self.failure_stage.run(record_id)
            return Outcome.failure(StageName.EXTRACTION, record_id, f"branch {branch.name} produced no recipe")
        return state.outcome

    def _run_step(self, step: Step, state: RunState) -> Any:
        attempt = 1
        while True:
            try:
                return step.action(self, state)
            except step.retry_on as err:
                if attempt >= step.max_attempts:
                    raise
                delay = step.retry_delay_seconds * attempt
                logger.info(
                    "Retrying step %s (attempt %d/%d) in %.1fs: %s",
                    step.name,
                    attempt + 1,
                    step.max_attempts,
                    delay,
                    err,
                )
                self._sleep(delay)
                attempt += 1
