"""API routers, one per domain concern, mounted under /api by main.py."""

from .plaid import router as plaid_router
from .summary import router as summary_router
from .accounts import router as accounts_router
from .categories import router as categories_router
from .transactions import router as transactions_router
from .subscriptions import router as subscriptions_router
from .recommendations import router as recommendations_router

ROUTERS = [
    plaid_router,
    summary_router,
    accounts_router,
    categories_router,
    transactions_router,
    subscriptions_router,
    recommendations_router,
]

__all__ = ["ROUTERS"]
