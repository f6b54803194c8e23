from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from tax_appeal_comps import identifiers
from tax_appeal_comps.api.schemas import (
    Comparable,
    ComparablesResponse,
    Health,
    ParcelMatch,
    QuotaSnapshot,
    SearchResponse,
    Subject,
)
from tax_appeal_comps.comps.engine import ComparableEngine, build_engine
from tax_appeal_comps.errors import FatalSourceFailure, InvalidIdentifier
from tax_appeal_comps.models import SubjectProperty
from tax_appeal_comps.registry.assessments import assessment_changes
from tax_appeal_comps.settings import Settings, get_settings


logger = logging.getLogger("tac.api")


def _subject_model(subject: SubjectProperty) -> Subject:
    payload = subject.to_dict()
    payload["pin_display"] = identifiers.display(subject.pin)
    payload["assessment_changes"] = [
        c.to_dict() for c in assessment_changes(subject.assessment_history)
    ]
    return Subject(**payload)


def _valid_pin(pin: str) -> str:
    try:
        return identifiers.require_valid(pin)
    except InvalidIdentifier as e:
        raise HTTPException(status_code=400, detail=str(e))


def _bad_gateway(exc: FatalSourceFailure) -> HTTPException:
    logger.error("registry failure", extra={"source": exc.source, "reason": exc.detail})
    return HTTPException(
        status_code=502, detail=f"county registry unavailable ({exc.source})"
    )


async def _subject_or_404(engine: ComparableEngine, pin: str) -> SubjectProperty:
    try:
        subject = await engine.fetch_subject(pin)
    except FatalSourceFailure as exc:
        raise _bad_gateway(exc)
    if subject is None:
        raise HTTPException(
            status_code=404, detail=f"parcel {identifiers.display(pin)} not found"
        )
    return subject


def get_engine(request: Request) -> ComparableEngine:
    engine = request.app.state.engine
    if engine is None:
        raise HTTPException(status_code=503, detail="engine not ready")
    return engine


def create_app(
    engine: Optional[ComparableEngine] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the HTTP surface.

    Without an ``engine`` one is built from settings at startup and closed at
    shutdown; an injected engine is left for the caller to close.
    """

    app = FastAPI(title="tax-appeal-comps")
    app.state.engine = engine
    app.state.owns_engine = engine is None

    @app.on_event("startup")
    async def _start_engine():
        if app.state.engine is None:
            app.state.engine = build_engine(settings or get_settings())

    @app.on_event("shutdown")
    async def _stop_engine():
        if app.state.owns_engine and app.state.engine is not None:
            await app.state.engine.aclose()
            app.state.engine = None

    @app.get("/api/health", response_model=Health)
    def health(engine: ComparableEngine = Depends(get_engine)):
        provider = engine.provider
        return Health(provider_configured=provider is not None and provider.configured)

    @app.get("/api/quota", response_model=QuotaSnapshot)
    def quota(engine: ComparableEngine = Depends(get_engine)):
        provider = engine.provider
        if provider is None:
            return QuotaSnapshot()
        return QuotaSnapshot(
            provider_configured=provider.configured, **provider.quota.snapshot()
        )

    # Declared before /api/parcels/{pin} so "search" is not taken for a PIN.
    @app.get("/api/parcels/search", response_model=SearchResponse)
    async def search_parcels(
        address: str = Query(..., min_length=1),
        city: Optional[str] = None,
        limit: int = Query(10, ge=1, le=100),
        engine: ComparableEngine = Depends(get_engine),
    ):
        if not address.strip():
            raise HTTPException(status_code=400, detail="address is required")
        try:
            matches = await engine.search(address, city, limit)
        except FatalSourceFailure as exc:
            raise _bad_gateway(exc)
        results = [
            ParcelMatch(
                pin=m.pin,
                pin_display=identifiers.display(m.pin),
                address=m.address,
                city=m.city,
                zip_code=m.zip_code,
                coordinates=(
                    {"latitude": m.coordinates.latitude, "longitude": m.coordinates.longitude}
                    if m.coordinates is not None
                    else None
                ),
            )
            for m in matches
        ]
        return SearchResponse(count=len(results), results=results)

    @app.get("/api/parcels/{pin}", response_model=Subject)
    async def get_parcel(pin: str, engine: ComparableEngine = Depends(get_engine)):
        normalized = _valid_pin(pin)
        subject = await _subject_or_404(engine, normalized)
        return _subject_model(subject)

    @app.get("/api/parcels/{pin}/comps", response_model=ComparablesResponse)
    async def get_comps(
        pin: str,
        limit: int = Query(20, ge=1, le=50),
        include_secondary: bool = False,
        engine: ComparableEngine = Depends(get_engine),
    ):
        normalized = _valid_pin(pin)
        subject = await _subject_or_404(engine, normalized)
        try:
            merged = await engine.find_comparables(
                subject, limit=limit, include_secondary_source=include_secondary
            )
        except FatalSourceFailure as exc:
            raise _bad_gateway(exc)
        return ComparablesResponse(
            pin=normalized,
            include_secondary_source=include_secondary,
            count=len(merged),
            comparables=[Comparable(**c.to_dict()) for c in merged],
        )

    return app
