"""
Consent manager HTTP service.

Issues, serves, validates and revokes signed consent artifacts, and publishes
the public key relying parties need to verify artifact proofs.

Usage:
    uvicorn consent_service:app --host 0.0.0.0 --port 3000
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional
import time

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from consent_manager.config import Settings, settings as default_settings
from consent_manager.errors import (
    AlreadyRevokedError,
    ConsentManagerError,
    NotFoundError,
    ValidationError,
    create_error_response,
)
from consent_manager.health import HealthChecker, setup_health_endpoints
from consent_manager.lifecycle import ConsentLifecycleManager
from consent_manager.logging_config import setup_logging, log_request, log_response, log_error
from consent_manager.models import (
    ConsentCreateRequest,
    PublicKeySet,
    RevokeRequest,
    ValidateRequest,
    Verdict,
    new_id,
    utcnow,
)
from consent_manager.observability import setup_instrumentation
from consent_manager.openapi_examples import CREATE_CONSENT_EXAMPLES, VALIDATE_CONSENT_EXAMPLES
from consent_manager.signing import SigningAuthority
from consent_manager.store import ConsentStore, InMemoryConsentStore
from consent_manager.validation import ValidationEngine

logger = setup_logging(default_settings.service_name, default_settings.log_level)

ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyRevokedError: status.HTTP_400_BAD_REQUEST,
}

router = APIRouter()


# ============================================================================
# Dependencies
# ============================================================================

def get_lifecycle(request: Request) -> ConsentLifecycleManager:
    return request.app.state.lifecycle


def get_validation_engine(request: Request) -> ValidationEngine:
    return request.app.state.validation_engine


def get_signer(request: Request) -> SigningAuthority:
    return request.app.state.signer


# ============================================================================
# Error Handlers
# ============================================================================

async def consent_error_handler(request: Request, exc: ConsentManagerError) -> JSONResponse:
    """Render core errors as structured JSON with a matching status code."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(status_code=status_code, content=create_error_response(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies the same way as missing fields."""
    error = ValidationError("Invalid request body", {"errors": jsonable_encoder(exc.errors())})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=create_error_response(error))


# ============================================================================
# Consent Endpoints
# ============================================================================

@router.post(
    "/consents",
    status_code=status.HTTP_201_CREATED,
    tags=["Consents"],
    openapi_extra=CREATE_CONSENT_EXAMPLES,
)
async def create_consent(
    payload: ConsentCreateRequest,
    lifecycle: ConsentLifecycleManager = Depends(get_lifecycle),
):
    """
    Create a signed consent artifact.

    - **data_principal**, **data_fiduciary**: identity records with an `id`
    - **purposes**: non-empty list of `{purpose_id, ...}`
    - **data_types**, **consent_method**, **starts_at**, **expires_at**, **metadata**: optional
    """
    request_id = new_id()
    start_time = time.time()
    log_request(logger, request_id, "create_consent")

    try:
        artifact = await lifecycle.create(
            data_principal=payload.data_principal,
            data_fiduciary=payload.data_fiduciary,
            purposes=payload.purposes,
            data_types=payload.data_types,
            consent_method=payload.consent_method,
            starts_at=payload.starts_at,
            expires_at=payload.expires_at,
            metadata=payload.metadata,
        )
    except ConsentManagerError as e:
        log_error(logger, request_id, e, duration_ms=(time.time() - start_time) * 1000)
        raise

    log_response(
        logger, request_id, "create_consent", True, (time.time() - start_time) * 1000,
        consent_id=artifact.consent_id,
    )
    return artifact.to_document()


@router.post(
    "/consents/validate",
    response_model=Verdict,
    response_model_exclude_none=True,
    tags=["Consents"],
    openapi_extra=VALIDATE_CONSENT_EXAMPLES,
)
async def validate_consent(
    payload: ValidateRequest,
    engine: ValidationEngine = Depends(get_validation_engine),
):
    """Real-time check: is there an active, matching, correctly signed consent?"""
    request_id = new_id()
    start_time = time.time()
    log_request(logger, request_id, "validate_consent", purpose_id=payload.purpose_id)

    try:
        verdict = await engine.validate(
            principal_id=payload.principal_id,
            fiduciary_id=payload.fiduciary_id,
            purpose_id=payload.purpose_id,
            data_types=payload.data_types,
        )
    except ConsentManagerError as e:
        log_error(logger, request_id, e, duration_ms=(time.time() - start_time) * 1000)
        raise

    log_response(
        logger, request_id, "validate_consent", True, (time.time() - start_time) * 1000,
        valid=verdict.valid,
    )
    return verdict


@router.get("/consents/{consent_id}", tags=["Consents"])
async def get_consent(
    consent_id: str,
    lifecycle: ConsentLifecycleManager = Depends(get_lifecycle),
):
    """Fetch a consent artifact by id."""
    artifact = await lifecycle.get(consent_id)
    return artifact.to_document()


@router.post("/consents/{consent_id}/revoke", tags=["Consents"])
async def revoke_consent(
    consent_id: str,
    payload: Optional[RevokeRequest] = None,
    lifecycle: ConsentLifecycleManager = Depends(get_lifecycle),
):
    """Revoke a consent artifact; the updated artifact is re-signed."""
    request_id = new_id()
    start_time = time.time()
    log_request(logger, request_id, "revoke_consent", consent_id=consent_id)

    try:
        artifact = await lifecycle.revoke(consent_id, reason=payload.reason if payload else None)
    except ConsentManagerError as e:
        log_error(logger, request_id, e, duration_ms=(time.time() - start_time) * 1000)
        raise

    log_response(logger, request_id, "revoke_consent", True, (time.time() - start_time) * 1000)
    return artifact.to_document()


@router.get("/public-keys", response_model=PublicKeySet, tags=["Keys"])
async def public_keys(signer: SigningAuthority = Depends(get_signer)):
    """Public verification keys for relying parties."""
    return PublicKeySet(keys=[signer.public_key_info()])


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    signer: Optional[SigningAuthority] = None,
    store: Optional[ConsentStore] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """
    Build the consent manager application.

    The signing authority and store are created once here and shared by the
    lifecycle manager and validation engine for the life of the app.
    """
    settings = settings or default_settings
    signer = signer or SigningAuthority.from_settings(settings)
    engine = None

    if store is None:
        if settings.uses_sql_store:
            from consent_manager.database import create_engine_from_settings, get_session_maker
            from consent_manager.sql_store import SQLConsentStore

            engine = create_engine_from_settings(settings)
            store = SQLConsentStore(get_session_maker(engine))
        else:
            store = InMemoryConsentStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management."""
        if engine is not None:
            from consent_manager.database import create_tables

            await create_tables(engine)
        logger.info("Consent manager started (kid=%s, store=%s)", signer.key_id, type(store).__name__)
        yield
        if engine is not None:
            await engine.dispose()
        logger.info("Consent manager stopped")

    app = FastAPI(title="Consent Manager", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.signer = signer
    app.state.store = store
    app.state.lifecycle = ConsentLifecycleManager(signer, store, settings=settings, clock=clock)
    app.state.validation_engine = ValidationEngine(signer, store, clock=clock)

    app.add_exception_handler(ConsentManagerError, consent_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)

    setup_health_endpoints(
        app,
        HealthChecker(service_name=settings.service_name, signer=signer, store=store, settings=settings),
    )
    if settings.metrics_enabled:
        setup_instrumentation(app)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)
