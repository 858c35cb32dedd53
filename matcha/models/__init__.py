"""
Matcha: ORM model registry.

Importing every model here ensures that ``Base.metadata`` (and any tool that
inspects it) discovers all tables automatically.
"""

from matcha.models.user import User
from matcha.models.auth import EmailVerification, PasswordReset, UserPassword
from matcha.models.relationship import Block, Like, ProfileView, Report
from matcha.models.match import Match
from matcha.models.notification import Notification, NotificationType
from matcha.models.message import Message

__all__ = [
    "User",
    "UserPassword",
    "EmailVerification",
    "PasswordReset",
    "Like",
    "Block",
    "Report",
    "ProfileView",
    "Match",
    "Notification",
    "NotificationType",
    "Message",
]
