"""User identification from HTTP headers or environment."""

from dataclasses import dataclass

import structlog
from fastapi import Request

from gift_registry.config import get_settings
from gift_registry.core.errors import ConstraintViolation
from gift_registry.core.models import User
from gift_registry.db.store import RegistryStore

logger = structlog.get_logger()


@dataclass
class CurrentUser:
    """Identity asserted by the authentication proxy."""

    email: str | None
    name: str | None

    @property
    def display_name(self) -> str:
        """Get display name, falling back to email or 'Unknown'."""
        if self.name:
            return self.name
        if self.email:
            # Extract username from email
            return self.email.split("@")[0]
        return "Unknown"

    @property
    def is_authenticated(self) -> bool:
        """Check if user is authenticated (has email)."""
        return bool(self.email)


def get_current_user(request: Request) -> CurrentUser:
    """Extract current user from request headers or environment.

    Behind the authentication proxy, user info is provided via HTTP headers:
    - X-Forwarded-Email: user email from IdP
    - X-Forwarded-Preferred-Username: display name from IdP

    In development, falls back to USER_EMAIL and USER_NAME env vars.
    """
    email = request.headers.get("X-Forwarded-Email")
    name = request.headers.get("X-Forwarded-Preferred-Username")

    # Fall back to environment variables (dev)
    if not email:
        settings = get_settings()
        email = settings.user.email or None
        name = name or settings.user.name or None

    return CurrentUser(email=email, name=name)


def resolve_user(current: CurrentUser, store: RegistryStore) -> User:
    """Map an authenticated identity to a stored user, creating it on first sight."""
    user = store.find_user_by_email(current.email)
    if user is not None:
        return user

    first_name, _, last_name = current.display_name.partition(" ")
    user = User(email=current.email, first_name=first_name, last_name=last_name)
    try:
        store.add_user(user)
    except ConstraintViolation:
        # Created concurrently by another request
        return store.find_user_by_email(current.email)
    logger.info("user_provisioned", user_id=str(user.id))
    return user
