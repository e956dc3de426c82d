from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional

from recipeflow.app.domain.models import (
    EnrichmentReport,
    NutritionStatus,
    Outcome,
    RecipeRecord,
    RecipeStatus,
    StageName,
)
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.services.image_stage import ImageInput, ImageStage
from recipeflow.app.services.nutrition_stage import NutritionInput, NutritionStage

logger = logging.getLogger(__name__)

ENRICHMENT_STAGES = (StageName.NUTRITION, StageName.IMAGE)


def pending_enrichments(record: RecipeRecord) -> list[StageName]:
    """Enrichment stages whose sub-field is still open on ``record``."""
    if record.status != RecipeStatus.SUCCESS or record.structured_content is None:
        return []

    stages = []
    if record.nutritional_information.status == NutritionStatus.PENDING:
        stages.append(StageName.NUTRITION)
    if not record.image_url:
        stages.append(StageName.IMAGE)
    return stages


class EnrichmentService:
    """
    Fans a SUCCESS recipe out to the nutrition and image stages and collects
    their outcomes. The stages write disjoint fields, so they run in parallel.
    """

    def __init__(
        self,
        store: RecipeStore,
        nutrition_stage: NutritionStage,
        image_stage: ImageStage,
        max_workers: int = len(ENRICHMENT_STAGES),
    ):
        self.store = store
        self.nutrition_stage = nutrition_stage
        self.image_stage = image_stage
        self.max_workers = max_workers

    def run(self, record_id: str, stages: Optional[Iterable[StageName]] = None) -> EnrichmentReport:
        report = EnrichmentReport(record_id=record_id)
        record = self.store.get(record_id)
        if record is None:
            logger.warning("Enrichment requested for unknown recipe: id=%s", record_id)
            return report

        wanted = pending_enrichments(record)
        if stages is not None:
            requested = set(stages)
            wanted = [stage for stage in wanted if stage in requested]
        if not wanted:
            logger.info("Nothing to enrich: id=%s, status=%s", record_id, record.status.value)
            return report

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="enrich") as pool:
            futures = {stage: pool.submit(self._run_for_record, record, stage) for stage in wanted}
            for stage, future in futures.items():
                try:
                    report.outcomes[stage] = future.result()
                except Exception as err:
                    logger.exception("Enrichment stage crashed: id=%s, stage=%s", record_id, stage.value)
                    report.outcomes[stage] = Outcome.failure(stage, record_id, str(err))

        logger.info(
            "Enrichment finished: id=%s, %s",
            record_id,
            ", ".join(f"{stage.value}={outcome.status.value}" for stage, outcome in report.outcomes.items()),
        )
        return report

    def run_stage(self, record_id: str, stage: StageName) -> Outcome[Any]:
        """Run one enrichment stage for a record, re-reading it first."""
        record = self.store.get(record_id)
        if record is None:
            return Outcome.skipped(stage, record_id, "record not found")
        if stage not in pending_enrichments(record):
            return Outcome.skipped(stage, record_id, "nothing pending for stage")
        return self._run_for_record(record, stage)

    def _run_for_record(self, record: RecipeRecord, stage: StageName) -> Outcome[Any]:
        if stage == StageName.NUTRITION:
            return self.nutrition_stage.run(NutritionInput(record.id, record.structured_content))
        if stage == StageName.IMAGE:
            return self.image_stage.run(ImageInput(record.id, record.structured_content, record.source.url))
        raise ValueError(f"Not an enrichment stage: {stage}")
