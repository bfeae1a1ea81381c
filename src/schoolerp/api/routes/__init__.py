"""
API routes module.
"""

from schoolerp.api.routes.auth import router as auth_router
from schoolerp.api.routes.finance import router as finance_router
from schoolerp.api.routes.schools import school_router, superadmin_router

__all__ = [
    "auth_router",
    "finance_router",
    "school_router",
    "superadmin_router",
]
