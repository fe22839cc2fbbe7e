import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chain_manager import ChainManager
from config import settings
from contact_store import ContactStore, LinkPrecedence
from db_models import (
    AddContactRequest,
    CleanResponse,
    DatabaseHealthResponse,
    DetailedHealthResponse,
    FinalResponse,
    HealthResponse,
    IdentifyRequest,
    IntegrityResponse,
    MatchScoreResponse,
    RepairResponse,
    SeedResponse,
)
from errors import CONSISTENCY_FAILURE, STORE_FAILURE, StoreFailure
from integrity_guard import IntegrityGuard, IntegrityReport
from resolver import Resolver

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    STORE_FAILURE: 503,
    CONSISTENCY_FAILURE: 500,
}

router = APIRouter()
dev_router = APIRouter(prefix="/database", tags=["development"])


def get_store(request: Request) -> ContactStore:
    return request.app.state.store


def get_resolver(request: Request) -> Resolver:
    return request.app.state.resolver


def get_guard(request: Request) -> IntegrityGuard:
    return request.app.state.guard


def get_chains(request: Request) -> ChainManager:
    return request.app.state.chains


def integrity_response(report: IntegrityReport) -> IntegrityResponse:
    return IntegrityResponse(
        isValid=report.is_valid,
        issues=report.issues,
        orphanedSecondaryIds=report.orphaned_secondary_ids,
        secondaryLinkIds=report.secondary_link_ids,
        cycleIds=report.cycle_ids,
        strayPrimaryLinkIds=report.stray_primary_link_ids,
        emptyContactIds=report.empty_contact_ids,
        splitIdentities=report.split_identities,
        linkableGroups=report.linkable_group_count,
        isolatedContacts=report.isolated_contact_count,
    )


@router.get("/")
async def root():
    return {"message": "Bitespeed API is up"}


@router.post("/identify", response_model=FinalResponse)
def identify(request: IdentifyRequest, resolver: Resolver = Depends(get_resolver)):

    if not request.email and not request.phoneNumber:
        raise HTTPException(status_code=400, detail="Either email or phoneNumber must be provided")

    result = resolver.identify(request)

    if not result.success:
        raise HTTPException(
            status_code=FAILURE_STATUS.get(result.failure.kind, 500),
            detail={"error": result.failure.kind, "message": result.failure.message},
        )

    return result.response


@router.post("/add-contact")
def add_contact(request: AddContactRequest, store: ContactStore = Depends(get_store)):
    """Add a new contact to the database with all fields"""
    try:
        contact = store.create_contact(
            email=request.email,
            phone_number=request.phoneNumber,
            linked_id=request.linkedId,
            link_precedence=LinkPrecedence(request.linkPrecedence or "primary"),
            contact_id=request.id,
            created_at=request.createdAt,
        )
    except StoreFailure as e:
        status = 409 if isinstance(e.cause, sqlite3.IntegrityError) else 503
        raise HTTPException(status_code=status, detail={"error": e.kind, "message": e.message})

    return {"message": "Contact added successfully", "contact_id": contact.id}


@router.get("/health", response_model=HealthResponse)
def health(store: ContactStore = Depends(get_store)):
    try:
        total = store.count()
        primaries = len(store.list_primaries())
    except StoreFailure as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content=HealthResponse(status="unhealthy", database="disconnected").model_dump(),
        )

    return HealthResponse(
        status="healthy",
        database="connected",
        totalContacts=total,
        primaryContacts=primaries,
        secondaryContacts=total - primaries,
    )


@router.get("/health/detailed", response_model=DetailedHealthResponse)
def health_detailed(
    store: ContactStore = Depends(get_store),
    resolver: Resolver = Depends(get_resolver),
    guard: IntegrityGuard = Depends(get_guard),
):
    try:
        total = store.count()
        primaries = len(store.list_primaries())
        statistics = resolver.identity_statistics()
        report = guard.inspect()
    except StoreFailure as e:
        logger.error(f"Detailed health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content=DetailedHealthResponse(status="unhealthy", database="disconnected").model_dump(),
        )

    return DetailedHealthResponse(
        status="healthy" if report.is_valid else "degraded",
        database="connected",
        totalContacts=total,
        primaryContacts=primaries,
        secondaryContacts=total - primaries,
        statistics=statistics,
        integrity=integrity_response(report),
    )


@router.get("/health/database", response_model=DatabaseHealthResponse)
def health_database(
    store: ContactStore = Depends(get_store),
    guard: IntegrityGuard = Depends(get_guard),
):
    try:
        total = store.count()
        primaries = len(store.list_primaries())
        deleted = store.count_deleted()
        last_created = store.last_created_at()
        report = guard.inspect()
    except StoreFailure as e:
        logger.error(f"Database health check failed: {e}")
        raise HTTPException(status_code=503, detail={"error": e.kind, "message": e.message})

    return DatabaseHealthResponse(
        status="healthy" if report.is_valid else "degraded",
        totalContacts=total,
        primaryContacts=primaries,
        secondaryContacts=total - primaries,
        orphanedSecondaryContacts=len(report.orphaned_secondary_ids),
        deletedContacts=deleted,
        lastCreatedAt=last_created,
        integrity=integrity_response(report),
    )


@router.post("/integrity/repair", response_model=RepairResponse)
def repair(guard: IntegrityGuard = Depends(get_guard)):
    try:
        report = guard.repair()
    except StoreFailure as e:
        raise HTTPException(status_code=503, detail={"error": e.kind, "message": e.message})

    return RepairResponse(
        totalFixes=report.total_fixes,
        cyclesBroken=report.cycles_broken,
        strayPrimaryLinksCleared=report.stray_primary_links_cleared,
        secondaryLinksPromoted=report.secondary_links_promoted,
        orphansPromoted=report.orphans_promoted,
        emptyContactsRemoved=report.empty_contacts_removed,
        errors=report.errors,
    )


@router.get("/debug/match", response_model=MatchScoreResponse)
def debug_match(
    email: Optional[str] = None,
    phoneNumber: Optional[str] = None,
    resolver: Resolver = Depends(get_resolver),
):
    if not email and not phoneNumber:
        raise HTTPException(status_code=400, detail="Either email or phoneNumber must be provided")

    try:
        contact, match = resolver.best_match(email, phoneNumber)
    except StoreFailure as e:
        raise HTTPException(status_code=503, detail={"error": e.kind, "message": e.message})

    return MatchScoreResponse(
        contactId=contact.id if contact else None,
        score=match.score,
        factors=match.factors,
        isExactMatch=match.is_exact_match,
    )


@dev_router.post("/seed", response_model=SeedResponse)
def seed_database(chains: ChainManager = Depends(get_chains)):
    try:
        created = chains.seed_sample_chains()
    except StoreFailure as e:
        raise HTTPException(status_code=503, detail={"error": e.kind, "message": e.message})

    return SeedResponse(message="Database seeded", contactIds=[c.id for c in created])


@dev_router.delete("/contacts", response_model=CleanResponse)
def clean_database(store: ContactStore = Depends(get_store)):
    try:
        deleted = store.purge()
    except StoreFailure as e:
        raise HTTPException(status_code=503, detail={"error": e.kind, "message": e.message})

    return CleanResponse(message="Database cleaned", deleted=deleted)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": jsonable_encoder(exc.errors())},
    )


def create_app(db_path: Optional[Path] = None, dev_routes: Optional[bool] = None) -> FastAPI:
    store = ContactStore(db_path)
    chains = ChainManager(store)
    guard = IntegrityGuard(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.repair_on_startup:
            try:
                guard.repair()
            except StoreFailure as e:
                logger.error(f"Startup integrity repair failed: {e}")
        yield

    app = FastAPI(
        title="Bitespeed Contact Reconciliation API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.chains = chains
    app.state.resolver = Resolver(store, chains)
    app.state.guard = guard
    app.include_router(router)
    if dev_routes is None:
        dev_routes = settings.dev_routes
    if dev_routes:
        app.include_router(dev_router)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
