from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from recipeflow.app.config import settings
from recipeflow.app.deps import (
    get_auth_context,
    get_enrichment_service,
    get_instacart_client,
    get_storage,
    get_store,
)
from recipeflow.app.domain.errors import RecordStoreError, StorageError
from recipeflow.app.domain.models import (
    AuthContext,
    NutritionStatus,
    RecipeRecord,
    RecipeStatus,
    RecordFilter,
)
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.db.rows import tags_to_rows
from recipeflow.app.infra.storage.base import StorageProvider
from recipeflow.app.schemas.recipes import (
    ALLOWED_PICTURE_TYPES,
    EnrichResponse,
    IngredientOut,
    NutritionOut,
    PictureUploadRequest,
    PictureUploadResponse,
    RecipeCreateRequest,
    RecipeListResponse,
    RecipeResponse,
    RecipeStatusValue,
    RecipeUpdateRequest,
    ShoppingLinkResponse,
    StructuredContentOut,
)
from recipeflow.app.services.enrichment import EnrichmentService, pending_enrichments
from recipeflow.services.errors import NetworkTimeoutError, RateLimitedError, ShoppingLinkError
from recipeflow.services.instacart import InstacartClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recipes", tags=["recipes"])


def _to_response(record: RecipeRecord) -> RecipeResponse:
    content = record.structured_content
    structured = None
    # A FAILED record never exposes structured content.
    if content is not None and record.status == RecipeStatus.SUCCESS:
        structured = StructuredContentOut(
            title=content.title,
            ingredients=[
                IngredientOut(
                    name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    stepMapping=item.step_mapping,
                )
                for item in content.ingredients
            ],
            instructions=content.instructions,
            prepTime=content.prep_time,
            cookTime=content.cook_time,
            servings=content.servings,
        )

    nutrition = record.nutritional_information
    return RecipeResponse(
        id=record.id,
        status=record.status.value,
        completeness=record.completeness.value,
        url=record.source.url,
        pictureSubmissionUuid=record.source.picture_submission_uuid,
        language=record.source.language,
        structuredContent=structured,
        nutritionalInformation=NutritionOut(
            status=nutrition.status.value,
            calories=nutrition.calories,
            fat=nutrition.fat,
            carbs=nutrition.carbs,
            protein=nutrition.protein,
        ),
        imageUrl=record.image_url,
        description=record.description,
        tags=record.tags,
        instacartUrl=record.instacart_url,
        createdAt=record.created_at,
        updatedAt=record.updated_at,
    )


def _store_unavailable(error: RecordStoreError) -> HTTPException:
    logger.error("Record store failure: %s", error)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Record store unavailable")


@router.post("", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def create_recipe(
    payload: RecipeCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    store: RecipeStore = Depends(get_store),
) -> RecipeResponse:
    fields = {
        "status": RecipeStatus.PENDING,
        "nutritional_information": {"status": NutritionStatus.PENDING.value},
        "url": payload.url.strip() if payload.url else None,
        "source_text": payload.text.strip() if payload.text else None,
        "picture_submission_uuid": str(payload.pictureSubmissionUuid) if payload.pictureSubmissionUuid else None,
        "language": payload.language,
        "owners": [auth.identity_id],
        "created_by": auth.identity_id,
        "description": payload.description.strip() if payload.description else None,
        "tags": tags_to_rows(payload.tags),
    }
    try:
        record = await run_in_threadpool(store.create, fields)
    except RecordStoreError as e:
        raise _store_unavailable(e)

    logger.info("Recipe submitted: id=%s, owner=%s, kind=%s", record.id, auth.identity_id, auth.kind.value)
    return _to_response(record)


@router.post("/uploads", response_model=PictureUploadResponse, status_code=status.HTTP_201_CREATED)
async def create_picture_upload(
    payload: PictureUploadRequest,
    auth: AuthContext = Depends(get_auth_context),
    storage: StorageProvider = Depends(get_storage),
) -> PictureUploadResponse:
    if payload.contentType not in ALLOWED_PICTURE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported content type: {payload.contentType}. Allowed: {sorted(ALLOWED_PICTURE_TYPES)}",
        )

    submission_uuid = uuid4()
    object_key = storage.picture_submission_key(str(submission_uuid))
    try:
        upload_url, expires_at = await run_in_threadpool(
            storage.generate_signed_put_url,
            object_key,
            payload.contentType,
            settings.UPLOAD_URL_EXPIRES_SECONDS,
        )
    except StorageError as e:
        logger.error("Failed to sign picture upload: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage service unavailable")

    logger.info("Picture upload signed: key=%s, owner=%s", object_key, auth.identity_id)
    return PictureUploadResponse(
        pictureSubmissionUuid=submission_uuid,
        uploadUrl=upload_url,
        expiresAt=expires_at,
    )


@router.get("", response_model=RecipeListResponse)
async def list_recipes(
    status_filter: Optional[RecipeStatusValue] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100),
    store: RecipeStore = Depends(get_store),
) -> RecipeListResponse:
    record_filter = RecordFilter(
        status=RecipeStatus(status_filter) if status_filter else None,
        limit=limit,
    )
    try:
        records = await run_in_threadpool(store.list, record_filter)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    return RecipeListResponse(items=[_to_response(record) for record in records])


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(
    recipe_id: str,
    store: RecipeStore = Depends(get_store),
) -> RecipeResponse:
    try:
        record = await run_in_threadpool(store.get, recipe_id)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    return _to_response(record)


@router.post("/{recipe_id}/enrich", response_model=EnrichResponse, status_code=status.HTTP_202_ACCEPTED)
async def enrich_recipe(
    recipe_id: str,
    background_tasks: BackgroundTasks,
    store: RecipeStore = Depends(get_store),
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> EnrichResponse:
    """Re-run whichever enrichments are still missing for a SUCCESS recipe."""
    try:
        record = await run_in_threadpool(store.get, recipe_id)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    if record.status != RecipeStatus.SUCCESS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Recipe is {record.status.value}; only SUCCESS recipes can be enriched",
        )

    stages = pending_enrichments(record)
    if stages:
        background_tasks.add_task(enrichment.run, recipe_id, stages)
        logger.info("Enrichment re-requested: id=%s, stages=%s", recipe_id, [s.value for s in stages])
    return EnrichResponse(id=recipe_id, scheduled=[stage.value for stage in stages])


@router.patch("/{recipe_id}", response_model=RecipeResponse)
async def update_recipe(
    recipe_id: str,
    payload: RecipeUpdateRequest,
    store: RecipeStore = Depends(get_store),
) -> RecipeResponse:
    fields: dict = {}
    if "description" in payload.model_fields_set:
        fields["description"] = payload.description.strip() if payload.description else None
    if "tags" in payload.model_fields_set:
        fields["tags"] = tags_to_rows(payload.tags or [])

    try:
        record = await run_in_threadpool(store.update, recipe_id, fields)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")

    logger.info("Recipe updated: id=%s, fields=%s", recipe_id, sorted(fields))
    return _to_response(record)


@router.post("/{recipe_id}/shopping-link", response_model=ShoppingLinkResponse)
async def create_shopping_link(
    recipe_id: str,
    store: RecipeStore = Depends(get_store),
    instacart: InstacartClient = Depends(get_instacart_client),
) -> ShoppingLinkResponse:
    """Instacart page for a SUCCESS recipe's ingredients. The first link created is kept."""
    try:
        record = await run_in_threadpool(store.get, recipe_id)
    except RecordStoreError as e:
        raise _store_unavailable(e)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    if record.status != RecipeStatus.SUCCESS or record.structured_content is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Recipe is {record.status.value}; only SUCCESS recipes have a shopping list",
        )
    if record.instacart_url:
        return ShoppingLinkResponse(id=recipe_id, instacartUrl=record.instacart_url)

    content = record.structured_content
    try:
        link = await run_in_threadpool(
            instacart.create_recipe_link,
            content.title,
            content.instructions,
            content.ingredients,
            record.image_url,
            record.source.url,
        )
    except (ShoppingLinkError, RateLimitedError, NetworkTimeoutError) as e:
        logger.warning("Shopping link failed: id=%s, error=%s", recipe_id, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not create shopping link")

    try:
        updated = await run_in_threadpool(
            store.update,
            recipe_id,
            {"instacart_url": link},
            only_if={"status": RecipeStatus.SUCCESS, "instacart_url": None},
        )
        if updated is None:
            # Another request stored a link first; keep theirs.
            updated = await run_in_threadpool(store.get, recipe_id)
    except RecordStoreError as e:
        raise _store_unavailable(e)

    stored = updated.instacart_url if updated is not None and updated.instacart_url else link
    logger.info("Shopping link ready: id=%s", recipe_id)
    return ShoppingLinkResponse(id=recipe_id, instacartUrl=stored)
