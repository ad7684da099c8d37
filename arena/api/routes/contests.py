"""Contest routes - current contest, featured stocks, predictions, resolution, leaderboard."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Query, status

from arena.core.exceptions import NotFoundError
from arena.schemas.contests import (
    ContestResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    PredictionListResponse,
    PredictionRequest,
    PredictionResponse,
    ResolutionResponse,
    ResolveRequest,
    StockListResponse,
    StockResponse,
    StockStatsResponse,
)
from arena.services.market_hours import is_market_open, next_market_open

from ..deps import Service, UserId


router = APIRouter()


def _contest_response(service: Service, info) -> ContestResponse:
    now = service.clock()
    return ContestResponse.build(info, is_market_open(now), next_market_open(now))


@router.get(
    "/current",
    response_model=ContestResponse,
    summary="Get current contest",
    description="The open contest, else the locked or next upcoming one.",
)
async def get_current_contest(service: Service) -> ContestResponse:
    info = await service.get_current_contest()
    if info is None:
        raise NotFoundError(message="No contest is currently scheduled")
    return _contest_response(service, info)


@router.get(
    "/{contest_id}",
    response_model=ContestResponse,
    summary="Get contest",
)
async def get_contest(contest_id: str, service: Service) -> ContestResponse:
    return _contest_response(service, await service.get_contest(contest_id))


@router.get(
    "/{contest_id}/stocks",
    response_model=StockListResponse,
    summary="Get featured stocks with prices",
    description="Featured stocks with their latest quote. Price fields are null when the quote is unavailable.",
)
async def get_contest_stocks(contest_id: str, service: Service) -> StockListResponse:
    await service.get_contest(contest_id)
    quotes = await service.get_featured_stocks_with_prices()
    stocks = [StockResponse.build(q) for q in quotes]
    return StockListResponse(stocks=stocks, total=len(stocks))


@router.post(
    "/{contest_id}/predictions",
    response_model=PredictionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a prediction",
)
async def submit_prediction(
    contest_id: str,
    payload: PredictionRequest,
    user_id: UserId,
    service: Service,
) -> PredictionResponse:
    prediction = await service.submit_prediction(
        user_id,
        contest_id,
        payload.stock_id,
        payload.direction,
        target_price=payload.target_price,
        confidence=payload.confidence_level,
        reasoning=payload.reasoning,
    )
    return PredictionResponse.build(prediction)


@router.get(
    "/{contest_id}/predictions",
    response_model=PredictionListResponse,
    summary="Get my predictions",
)
async def get_my_predictions(
    contest_id: str, user_id: UserId, service: Service
) -> PredictionListResponse:
    predictions = await service.get_user_predictions(contest_id, user_id)
    return PredictionListResponse(
        predictions=[PredictionResponse.build(p) for p in predictions],
        total=len(predictions),
    )


@router.post(
    "/{contest_id}/house-predictions",
    response_model=PredictionListResponse,
    summary="Generate house predictions",
    description="Record the algorithmic prediction for every featured stock. Stocks whose data cannot be fetched are skipped. Locked or resolved contests answer 409.",
)
async def generate_house_predictions(
    contest_id: str, service: Service
) -> PredictionListResponse:
    predictions = await service.generate_house_predictions(contest_id)
    return PredictionListResponse(
        predictions=[PredictionResponse.build(p) for p in predictions],
        total=len(predictions),
    )


@router.post(
    "/{contest_id}/resolve",
    response_model=ResolutionResponse,
    summary="Resolve contest",
    description="Grade all predictions and rebuild the leaderboard. Without a body, realized prices are fetched from the market.",
)
async def resolve_contest(
    contest_id: str,
    service: Service,
    payload: Optional[ResolveRequest] = Body(default=None),
) -> ResolutionResponse:
    prices = payload.realized_prices if payload else None
    resolution = await service.resolve_contest(contest_id, prices)
    return ResolutionResponse.build(resolution)


@router.get(
    "/{contest_id}/resolution",
    response_model=ResolutionResponse,
    summary="Get contest resolution",
)
async def get_resolution(contest_id: str, service: Service) -> ResolutionResponse:
    resolution = await service.get_resolution(contest_id)
    if resolution is None:
        raise NotFoundError(
            message="Contest has not been resolved", details={"contest_id": contest_id}
        )
    return ResolutionResponse.build(resolution)


@router.get(
    "/{contest_id}/leaderboard",
    response_model=LeaderboardResponse,
    summary="Get leaderboard",
)
async def get_leaderboard(
    contest_id: str,
    service: Service,
    limit: int = Query(50, ge=1, le=500, description="Number of entries to return"),
) -> LeaderboardResponse:
    entries = await service.get_leaderboard(contest_id, limit=limit)
    return LeaderboardResponse(
        contest_id=contest_id,
        entries=[LeaderboardEntryResponse.build(e) for e in entries],
        total=len(entries),
    )


@router.get(
    "/{contest_id}/stocks/{stock_id}/stats",
    response_model=StockStatsResponse,
    summary="Get crowd sentiment for a stock",
)
async def get_stock_stats(
    contest_id: str, stock_id: str, service: Service
) -> StockStatsResponse:
    return StockStatsResponse.build(await service.get_stock_stats(contest_id, stock_id))
