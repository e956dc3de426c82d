# recipeflow/app/deps.py (process-wide singletons exposed as dependencies)

from __future__ import annotations

import logging
import threading
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client, create_client

from recipeflow.app.config import settings
from recipeflow.app.domain.errors import ConfigurationError, StorageError
from recipeflow.app.domain.models import AuthContext
from recipeflow.app.infra.db.base import RecipeStore
from recipeflow.app.infra.db.memory_store import InMemoryRecipeStore
from recipeflow.app.infra.db.supabase_recipe_store import SupabaseRecipeStore
from recipeflow.app.infra.storage.base import StorageProvider
from recipeflow.app.infra.storage.r2_provider import R2StorageProvider
from recipeflow.app.services.enrichment import EnrichmentService
from recipeflow.app.services.image_stage import ImageStage
from recipeflow.app.services.nutrition_stage import NutritionStage
from recipeflow.services.feedback_mailer import FeedbackMailer
from recipeflow.services.gemini_client import GeminiClient
from recipeflow.services.image_generator import ImageGenerator
from recipeflow.services.instacart import InstacartClient

logger = logging.getLogger(__name__)

_client: Client | None = None
_store: RecipeStore | None = None
_storage: StorageProvider | None = None
_enrichment: EnrichmentService | None = None
_mailer: FeedbackMailer | None = None
_lock = threading.Lock()


def get_supabase() -> Client:
    global _client
    if _client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Supabase is not configured",
            )
        _client = create_client(str(settings.SUPABASE_URL), settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


def get_service_store() -> RecipeStore:
    """Store bound to the service context; request handlers rebind it per caller."""
    global _store
    with _lock:
        if _store is None:
            if settings.STORE_BACKEND == "memory":
                logger.warning("Using in-memory recipe store; records are lost on restart")
                _store = InMemoryRecipeStore()
            else:
                _store = SupabaseRecipeStore(client=get_supabase())
    return _store


auth_scheme = HTTPBearer(auto_error=False)


def get_auth_context(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    guest_identity: Optional[str] = Header(default=None, alias="X-Guest-Identity"),
) -> AuthContext:
    """
    Authorization: Bearer <supabase access token> for signed-in users,
    X-Guest-Identity: <id> for guests.
    """
    if cred is not None and cred.scheme.lower() == "bearer":
        try:
            res = get_supabase().auth.get_user(cred.credentials)
            user = res.user
        except HTTPException:
            raise
        except Exception:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid/expired token")
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        return AuthContext.user(str(user.id))

    if guest_identity and guest_identity.strip():
        return AuthContext.guest(guest_identity.strip())

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token or guest identity")


def get_store(
    auth: AuthContext = Depends(get_auth_context),
    store: RecipeStore = Depends(get_service_store),
) -> RecipeStore:
    return store.with_auth(auth)


def build_storage() -> StorageProvider:
    """R2 provider from settings. Raises StorageError when R2 is not configured."""
    return R2StorageProvider(
        account_id=settings.R2_ACCOUNT_ID,
        access_key_id=settings.R2_ACCESS_KEY_ID,
        secret_access_key=settings.R2_SECRET_ACCESS_KEY,
        bucket_name=settings.R2_BUCKET_NAME,
        public_url=settings.R2_PUBLIC_URL,
    )


def build_model_clients() -> tuple[GeminiClient, ImageGenerator]:
    if not settings.GEMINI_API_KEY:
        raise ConfigurationError(["GEMINI_API_KEY is required"])
    gemini = GeminiClient(api_key=settings.GEMINI_API_KEY, model_name=settings.GEMINI_MODEL)
    generator = ImageGenerator(api_key=settings.GEMINI_API_KEY, model_name=settings.GEMINI_IMAGE_MODEL)
    return gemini, generator


def get_storage() -> StorageProvider:
    global _storage
    if _storage is None:
        try:
            _storage = build_storage()
        except StorageError as e:
            logger.error("Failed to initialize storage: %s", e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Storage service unavailable",
            )
    return _storage


def get_enrichment_service(
    store: RecipeStore = Depends(get_service_store),
    storage: StorageProvider = Depends(get_storage),
) -> EnrichmentService:
    global _enrichment
    if _enrichment is None:
        try:
            gemini, generator = build_model_clients()
        except ConfigurationError:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Model service is not configured",
            )
        _enrichment = EnrichmentService(
            store=store,
            nutrition_stage=NutritionStage(store, gemini),
            image_stage=ImageStage(store, storage, generator),
        )
    return _enrichment


def get_instacart_client() -> InstacartClient:
    if not settings.INSTACART_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Shopping links are not configured",
        )
    return InstacartClient(api_key=settings.INSTACART_API_KEY, base_url=settings.INSTACART_API_URI)


def get_feedback_mailer() -> FeedbackMailer:
    global _mailer
    if _mailer is None:
        if not settings.FEEDBACK_SENDER or not settings.FEEDBACK_RECIPIENT:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Feedback e-mail is not configured",
            )
        _mailer = FeedbackMailer(
            sender=settings.FEEDBACK_SENDER,
            recipient=settings.FEEDBACK_RECIPIENT,
            region=settings.AWS_REGION,
        )
    return _mailer
