"""Version 1 API routers."""

from upfit_orders.api.v1.orders import router as orders_router

__all__ = ["orders_router"]
