"""
Matcha: API dependencies

Services are wired per request from the application's connection hub, which
doubles as the realtime notification transport.  Session management is out
of scope: the acting user is identified by the ``X-User-Id`` header.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Header, Request

from matcha.realtime.hub import ConnectionHub
from matcha.services.auth_service import AuthService
from matcha.services.message_service import MessageService
from matcha.services.notification_service import NotificationService
from matcha.services.profile_view_service import ProfileViewService
from matcha.services.relationship_service import RelationshipService
from matcha.services.user_service import UserService

# ── Service singletons ────────────────────────────────────────────────────────

_auth_service: AuthService | None = None
_user_service: UserService | None = None


def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def get_user_service() -> UserService:
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service


# ── Per-request wiring ────────────────────────────────────────────────────────

def get_hub(request: Request) -> ConnectionHub | None:
    return getattr(request.app.state, "hub", None)


def get_notification_service(
    hub: ConnectionHub | None = Depends(get_hub),
) -> NotificationService:
    return NotificationService(transport=hub)


def get_relationship_service(
    notifications: NotificationService = Depends(get_notification_service),
) -> RelationshipService:
    return RelationshipService(notifications=notifications)


def get_message_service(
    notifications: NotificationService = Depends(get_notification_service),
) -> MessageService:
    return MessageService(notifications=notifications)


def get_profile_view_service(
    notifications: NotificationService = Depends(get_notification_service),
) -> ProfileViewService:
    return ProfileViewService(notifications=notifications)


def get_current_user_id(x_user_id: uuid.UUID = Header(...)) -> uuid.UUID:
    return x_user_id
