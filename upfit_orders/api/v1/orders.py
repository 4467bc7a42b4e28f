"""
Order lifecycle API endpoints.

This module implements the FastAPI router for upfit orders: listing and
lookup, creation from configurator builds, status transitions and
cancellation, ETA edits, inventory and dealer website status, listing
publication, notes and deletion. Service errors map to 404 (unknown order),
409 (illegal transition), 400 (invalid argument) and 422 (missing fields).
"""

from datetime import datetime
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from upfit_orders.api.deps import OrderServiceDep, order_log_context
from upfit_orders.core.logging import get_logger
from upfit_orders.schemas.orders import (
    DealerWebsiteStatusRequest,
    DeleteOrdersRequest,
    DeleteOrdersResponse,
    EtaUpdateRequest,
    InventoryStatusRequest,
    InventoryStatusResponse,
    NoteCreateRequest,
    NoteEnvelopeResponse,
    NoteResponse,
    OrderCreatedResponse,
    OrderCreateRequest,
    OrderDetailResponse,
    OrderEnvelopeResponse,
    OrderEventResponse,
    OrderResponse,
    PublishResponse,
    StatusResponse,
    TransitionRequest,
)
from upfit_orders.services.orders.enums import OrderStatus
from upfit_orders.services.orders.errors import (
    InvalidArgumentError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
)
from upfit_orders.services.orders.models import OrderFilter
from upfit_orders.services.orders.repository import OrderRepositoryError

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

_ERROR_STATUS = (
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, "Invalid Transition"),
    (OrderValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error"),
    (InvalidArgumentError, status.HTTP_400_BAD_REQUEST, "Invalid Argument"),
)


def _raise_http_error(error: OrderServiceError, operation: str) -> NoReturn:
    """
    Translate a service error into an HTTPException.

    Raises:
        HTTPException: 500 for errors without a client mapping
        OrderRepositoryError: Passed through to the storage error handler
    """
    if isinstance(error, OrderRepositoryError):
        raise error

    for error_type, status_code, label in _ERROR_STATUS:
        if isinstance(error, error_type):
            logger.warning(
                "Order request rejected",
                operation=operation,
                status_code=status_code,
                error=str(error),
                context=error.context,
            )
            raise HTTPException(
                status_code=status_code,
                detail={
                    "error": label,
                    "message": str(error),
                    "details": error.context,
                },
            ) from error

    logger.error(
        "Order request failed",
        operation=operation,
        error=str(error),
        error_type=type(error).__name__,
        context=error.context,
    )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "Internal Server Error",
            "message": "Order operation failed",
            "details": {},
        },
    ) from error


@router.get(
    "",
    response_model=List[OrderResponse],
    summary="List orders",
    description="List orders newest first; all given filters must match",
)
async def list_orders(
    service: OrderServiceDep,
    status_filter: Optional[str] = Query(None, alias="status", description="Exact status"),
    dealer_code: Optional[str] = Query(None, description="Dealer code"),
    upfitter_id: Optional[str] = Query(None, description="Upfitter id, order or build level"),
    is_stock: Optional[bool] = Query(None, description="Stock (true) or sold (false)"),
    q: Optional[str] = Query(None, description="Free-text search"),
    created_from: Optional[datetime] = Query(None, description="Created on or after"),
    created_to: Optional[datetime] = Query(None, description="Created on or before"),
) -> List[OrderResponse]:
    try:
        order_filter = OrderFilter(
            status=OrderStatus.from_string(status_filter) if status_filter else None,
            dealer_code=dealer_code,
            upfitter_id=upfitter_id,
            is_stock=is_stock,
            q=q,
            created_from=created_from,
            created_to=created_to,
        )
    except ValueError as e:
        _raise_http_error(InvalidArgumentError(str(e), status=status_filter), "list_orders")

    orders = await service.list_orders(order_filter)
    return [OrderResponse.model_validate(order) for order in orders]


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
)
async def create_order(
    request: OrderCreateRequest,
    service: OrderServiceDep,
) -> OrderCreatedResponse:
    """
    Create an order from a configurator build.

    Raises:
        HTTPException: 422 listing every missing required field
    """
    try:
        result = await service.create_order(request.model_dump(exclude_unset=True))
    except OrderServiceError as e:
        _raise_http_error(e, "create_order")

    return OrderCreatedResponse(**result)


@router.post(
    "/delete",
    response_model=DeleteOrdersResponse,
    summary="Delete orders",
    description="Delete orders with their events and notes; unknown ids are ignored",
)
async def delete_orders(
    request: DeleteOrdersRequest,
    service: OrderServiceDep,
) -> DeleteOrdersResponse:
    result = await service.delete_orders(request.ids)
    return DeleteOrdersResponse(**result)


@router.get(
    "/{order_id}",
    dependencies=[Depends(order_log_context)],
    response_model=OrderDetailResponse,
    summary="Get order",
    description="Order by id, stock number or VIN with its status history",
)
async def get_order(order_id: str, service: OrderServiceDep) -> OrderDetailResponse:
    try:
        result = await service.get_order(order_id)
    except OrderServiceError as e:
        _raise_http_error(e, "get_order")

    return OrderDetailResponse(
        order=OrderResponse.model_validate(result["order"]),
        events=[OrderEventResponse.model_validate(e) for e in result["events"]],
    )


@router.post(
    "/{order_id}/transition",
    dependencies=[Depends(order_log_context)],
    response_model=StatusResponse,
    summary="Transition order",
)
async def transition_order(
    order_id: str,
    request: TransitionRequest,
    service: OrderServiceDep,
) -> StatusResponse:
    """
    Move an order to its next stage or cancel it.

    Raises:
        HTTPException: 404 unknown order, 409 illegal transition, 400 bad status
    """
    try:
        result = await service.transition_order(order_id, request.target_status)
    except OrderServiceError as e:
        _raise_http_error(e, "transition_order")

    return StatusResponse(**result)


@router.post(
    "/{order_id}/cancel",
    dependencies=[Depends(order_log_context)],
    response_model=StatusResponse,
    summary="Cancel order",
)
async def cancel_order(order_id: str, service: OrderServiceDep) -> StatusResponse:
    try:
        result = await service.cancel_order(order_id)
    except OrderServiceError as e:
        _raise_http_error(e, "cancel_order")

    return StatusResponse(**result)


@router.patch(
    "/{order_id}/etas",
    dependencies=[Depends(order_log_context)],
    response_model=OrderEnvelopeResponse,
    summary="Update ETAs",
    description="Merge milestone dates and re-apply the ETA policy",
)
async def update_etas(
    order_id: str,
    request: EtaUpdateRequest,
    service: OrderServiceDep,
) -> OrderEnvelopeResponse:
    try:
        result = await service.update_etas(order_id, request.model_dump(exclude_none=True))
    except OrderServiceError as e:
        _raise_http_error(e, "update_etas")

    return OrderEnvelopeResponse(order=OrderResponse.model_validate(result["order"]))


@router.put(
    "/{order_id}/inventory-status",
    dependencies=[Depends(order_log_context)],
    response_model=InventoryStatusResponse,
    summary="Set inventory status",
)
async def set_inventory_status(
    order_id: str,
    request: InventoryStatusRequest,
    service: OrderServiceDep,
) -> InventoryStatusResponse:
    try:
        result = await service.set_inventory_status(
            order_id, request.status, request.buyer_name
        )
    except OrderServiceError as e:
        _raise_http_error(e, "set_inventory_status")

    return InventoryStatusResponse(**result)


@router.put(
    "/{order_id}/dealer-website-status",
    dependencies=[Depends(order_log_context)],
    response_model=OrderEnvelopeResponse,
    summary="Set dealer website status",
    description="Only stock units can be published",
)
async def set_dealer_website_status(
    order_id: str,
    request: DealerWebsiteStatusRequest,
    service: OrderServiceDep,
) -> OrderEnvelopeResponse:
    try:
        result = await service.set_dealer_website_status(order_id, request.status)
    except OrderServiceError as e:
        _raise_http_error(e, "set_dealer_website_status")

    return OrderEnvelopeResponse(order=OrderResponse.model_validate(result["order"]))


@router.post(
    "/{order_id}/publish",
    dependencies=[Depends(order_log_context)],
    response_model=PublishResponse,
    summary="Publish listing",
)
async def publish_listing(order_id: str, service: OrderServiceDep) -> PublishResponse:
    try:
        result = await service.publish_listing(order_id)
    except OrderServiceError as e:
        _raise_http_error(e, "publish_listing")

    return PublishResponse(
        order=OrderResponse.model_validate(result["order"]),
        channel=result["channel"],
    )


@router.get(
    "/{order_id}/notes",
    dependencies=[Depends(order_log_context)],
    response_model=List[NoteResponse],
    summary="List notes",
)
async def list_notes(order_id: str, service: OrderServiceDep) -> List[NoteResponse]:
    try:
        notes = await service.list_notes(order_id)
    except OrderServiceError as e:
        _raise_http_error(e, "list_notes")

    return [NoteResponse.model_validate(note) for note in notes]


@router.post(
    "/{order_id}/notes",
    dependencies=[Depends(order_log_context)],
    response_model=NoteEnvelopeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add note",
)
async def add_note(
    order_id: str,
    request: NoteCreateRequest,
    service: OrderServiceDep,
) -> NoteEnvelopeResponse:
    try:
        result = await service.add_note(order_id, request.text, request.user)
    except OrderServiceError as e:
        _raise_http_error(e, "add_note")

    return NoteEnvelopeResponse(note=NoteResponse.model_validate(result["note"]))
