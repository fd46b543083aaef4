"""Price rule API endpoints."""

from fastapi import APIRouter, HTTPException, Query, Response, status

from boxoffice.api.v1.dependencies import PriceResolverDep, PriceRuleServiceDep
from boxoffice.config import get_settings
from boxoffice.models.catalog import SeatType
from boxoffice.models.price_rule import DayType
from boxoffice.schemas.common import PaginatedResponse
from boxoffice.schemas.price_rule import (
    PriceRuleCreate,
    PriceRuleResponse,
    PriceRuleUpdate,
    QuoteRequest,
    QuoteResponse,
    SeatQuoteResponse,
)

router = APIRouter()
settings = get_settings()


@router.post(
    "/quote",
    response_model=QuoteResponse,
    summary="Quote seats",
)
async def quote_seats(
    request: QuoteRequest,
    resolver: PriceResolverDep,
) -> QuoteResponse:
    """Price seats of a showing without reserving them."""
    quote_set = await resolver.quote_many(request.showing_id, request.seat_ids)
    return QuoteResponse(
        showing_id=quote_set.showing_id,
        day_type=quote_set.day_type,
        currency=settings.CURRENCY,
        quotes=[
            SeatQuoteResponse(
                seat_id=q.seat_id, seat_type=q.seat_type, unit_price=q.unit_price
            )
            for q in quote_set.quotes
        ],
        total=quote_set.total,
    )


@router.post(
    "",
    response_model=PriceRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create price rule",
)
async def create_price_rule(
    rule_data: PriceRuleCreate,
    service: PriceRuleServiceDep,
) -> PriceRuleResponse:
    """
    Create a price rule.

    Only one rule may exist per scope, day type and seat type (409 otherwise).
    """
    rule = await service.create_rule(
        day_type=rule_data.day_type,
        seat_type=rule_data.seat_type,
        price=rule_data.price,
        cinema_id=rule_data.cinema_id,
        is_active=rule_data.is_active,
    )
    return PriceRuleResponse.model_validate(rule)


@router.get(
    "",
    response_model=PaginatedResponse[PriceRuleResponse],
    summary="List price rules",
)
async def list_price_rules(
    service: PriceRuleServiceDep,
    cinema_id: str | None = None,
    global_only: bool = False,
    day_type: DayType | None = None,
    seat_type: SeatType | None = None,
    is_active: bool | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[PriceRuleResponse]:
    """List price rules with optional filtering."""
    rules, total = await service.list_rules(
        cinema_id=cinema_id,
        global_only=global_only,
        day_type=day_type,
        seat_type=seat_type,
        is_active=is_active,
        page=page,
        page_size=page_size,
    )

    total_pages = (total + page_size - 1) // page_size

    return PaginatedResponse(
        items=[PriceRuleResponse.model_validate(r) for r in rules],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get(
    "/{rule_id}",
    response_model=PriceRuleResponse,
    summary="Get price rule",
)
async def get_price_rule(
    rule_id: str,
    service: PriceRuleServiceDep,
) -> PriceRuleResponse:
    rule = await service.get_rule(rule_id)
    if not rule:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Price rule not found",
        )
    return PriceRuleResponse.model_validate(rule)


@router.put(
    "/{rule_id}",
    response_model=PriceRuleResponse,
    summary="Update price rule",
)
async def update_price_rule(
    rule_id: str,
    rule_data: PriceRuleUpdate,
    service: PriceRuleServiceDep,
) -> PriceRuleResponse:
    rule = await service.update_rule(
        rule_id, price=rule_data.price, is_active=rule_data.is_active
    )
    return PriceRuleResponse.model_validate(rule)


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete price rule",
)
async def delete_price_rule(
    rule_id: str,
    service: PriceRuleServiceDep,
) -> Response:
    await service.delete_rule(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
