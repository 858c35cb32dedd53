"""
Matcha: Main API Router

Aggregates all sub-routers under a single prefix so that ``matcha.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from matcha.api import auth, messages, notifications, relationships, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(relationships.router, prefix="/relationships", tags=["Relationships"])
router.include_router(messages.router, prefix="/messages", tags=["Messages"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
