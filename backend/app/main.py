from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query
from loguru import logger

from ingestion.refresh import RefreshInProgressError, RefreshOrchestrator

from . import schemas
from .core.config import settings
from .db import get_db, init_db
from .domain import Period
from .services.explanation_service import ExplanationService, MarketForExplanation
from .services.market_service import MarketService

app = FastAPI(title="Market Movers API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create tables when the API boots."""

    init_db()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _market_service(db=Depends(get_db)) -> MarketService:
    """Provide the market service wired with a SQLAlchemy session."""

    return MarketService(db)


def _refresh_orchestrator() -> RefreshOrchestrator:
    return RefreshOrchestrator()


def _explanation_service() -> ExplanationService:
    return ExplanationService()


@app.get("/markets", response_model=schemas.MoversList, tags=["markets"])
def list_movers(
    *,
    period: Annotated[Period, Query(description="Lookback period (1d|1w|1m)")] = Period.DAY,
    service: MarketService = Depends(_market_service),
):
    """Top markets by absolute price change, or the most recent ones when none has history."""

    result = service.top_movers(period)
    return schemas.MoversList(
        period=result.period,
        total=len(result.markets),
        fallback_mode=result.fallback_mode,
        markets=[schemas.Market.model_validate(market) for market in result.markets],
    )


@app.post("/refresh", response_model=schemas.RefreshResponse, tags=["markets"])
async def refresh_markets(orchestrator: RefreshOrchestrator = Depends(_refresh_orchestrator)):
    """Fetch all sources and update stored markets."""

    try:
        summary = await orchestrator.refresh_all()
    except RefreshInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info(
        "Refresh request finished: {} updated, {} added, {} errors",
        summary.total_updated,
        summary.total_added,
        summary.total_errors,
    )
    return schemas.RefreshResponse(
        timestamp=summary.timestamp,
        markets_updated=summary.total_updated,
        markets_added=summary.total_added,
        errors=summary.total_errors,
        details={
            source.value: schemas.SourceRefreshResult(**result.to_dict())
            for source, result in summary.results.items()
        },
    )


@app.post("/explanations", response_model=schemas.ExplanationList, tags=["explanations"])
async def create_explanations(
    request: schemas.ExplanationRequest,
    service: ExplanationService = Depends(_explanation_service),
):
    """Generate a short rationale for each supplied market move."""

    markets = [
        MarketForExplanation(**market.model_dump()) for market in request.markets
    ]
    results = await service.generate_explanations(markets, request.period)
    return schemas.ExplanationList(
        period=request.period,
        total=len(results),
        explanations=[
            schemas.Explanation(
                market_id=result.market_id,
                explanation=result.explanation,
                error=result.error,
            )
            for result in results
        ],
    )
