"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from marketplace_chat.core.security import decode_subject
from marketplace_chat.core.settings import settings
from marketplace_chat.db.session import get_db
from marketplace_chat.models import UserProfile
from marketplace_chat.services.broadcast import BroadcastClient, get_broadcast_client
from marketplace_chat.services.conversations import ConversationStore
from marketplace_chat.services.errors import AuthenticationError, FeatureDisabledError
from marketplace_chat.services.legacy_threads import LegacyThreadStore
from marketplace_chat.services.notifier import Notifier, get_notifier
from marketplace_chat.services.rate_limit import TypingRateLimiter, get_typing_limiter

# Missing credentials are reported through AuthenticationError, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
) -> UserProfile:
    """Get the current authenticated user from the bearer token.

    Args:
        credentials: HTTP Bearer token credentials, if any were sent
        db: Database session

    Returns:
        Profile of the authenticated user

    Raises:
        AuthenticationError: If the token is missing, invalid or names no user
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    subject = decode_subject(credentials.credentials)
    if subject is None:
        raise AuthenticationError("Could not validate credentials")

    user = db.get(UserProfile, subject)
    if user is None:
        raise AuthenticationError("User not found")
    return user


# Type alias for current user dependency
CurrentUserDep = Annotated[UserProfile, Depends(get_current_user)]


def require_chat_v2() -> None:
    """Reject symmetric chat requests while the feature is switched off."""
    if not settings.chat_v2_enabled:
        raise FeatureDisabledError("Chat is temporarily disabled")


def get_legacy_store(db: SessionDep) -> LegacyThreadStore:
    return LegacyThreadStore(db)


def get_conversation_store(db: SessionDep) -> ConversationStore:
    return ConversationStore(db)


NotifierDep = Annotated[Notifier, Depends(get_notifier)]
TypingLimiterDep = Annotated[TypingRateLimiter, Depends(get_typing_limiter)]
BroadcastClientDep = Annotated[BroadcastClient, Depends(get_broadcast_client)]
LegacyStoreDep = Annotated[LegacyThreadStore, Depends(get_legacy_store)]
ConversationStoreDep = Annotated[ConversationStore, Depends(get_conversation_store)]
