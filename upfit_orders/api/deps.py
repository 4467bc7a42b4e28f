"""
FastAPI dependencies for the order lifecycle service.

This module wires an OrderService per request. In memory mode every request
shares one process-wide repository; in database mode each request gets a
SQLAlchemy repository on its own session. Either way all stores share one
lock, so read-modify-write units never interleave inside the process.
"""

import asyncio
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends

from upfit_orders.core.config import get_settings
from upfit_orders.core.logging import bind_order_context, get_logger
from upfit_orders.database.connection import get_session
from upfit_orders.services.orders.repository import (
    InMemoryOrderRepository,
    SqlAlchemyOrderRepository,
)
from upfit_orders.services.orders.service import OrderService, build_order_service

logger = get_logger(__name__)

_memory_repository: Optional[InMemoryOrderRepository] = None
_store_lock: Optional[asyncio.Lock] = None


def get_store_lock() -> asyncio.Lock:
    """Process-wide lock guarding order mutations."""
    global _store_lock

    if _store_lock is None:
        _store_lock = asyncio.Lock()
    return _store_lock


def get_memory_repository() -> InMemoryOrderRepository:
    """Process-wide in-memory repository."""
    global _memory_repository

    if _memory_repository is None:
        _memory_repository = InMemoryOrderRepository()
        logger.info("In-memory order repository created")
    return _memory_repository


def reset_order_state() -> None:
    """Drop the in-memory repository and lock; used between tests."""
    global _memory_repository, _store_lock

    _memory_repository = None
    _store_lock = None


async def get_order_service() -> AsyncGenerator[OrderService, None]:
    """
    FastAPI dependency providing the order service.

    Yields:
        OrderService bound to the configured storage
    """
    settings = get_settings()

    if settings.order_storage == "database":
        async with get_session() as session:
            yield build_order_service(
                SqlAlchemyOrderRepository(session),
                settings=settings,
                lock=get_store_lock(),
            )
    else:
        yield build_order_service(
            get_memory_repository(),
            settings=settings,
            lock=get_store_lock(),
        )


async def order_log_context(order_id: str) -> str:
    """Path dependency binding the order id to request log events."""
    bind_order_context(order_id)
    return order_id


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
