"""Display name and avatar resolution for counterpart enrichment."""

from __future__ import annotations

import re

from marketplace_chat.core.settings import settings
from marketplace_chat.models import UserProfile

PLACEHOLDER_NAME = "Contact"
PUBLIC_OBJECT_PATH = "storage/v1/object/public/"

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_HOST_WITH_PUBLIC_PATH = re.compile(r"^[\w.-]+\.[\w.-]+/.+/storage/v1/object/public/", re.IGNORECASE)


def _clean(value: str | None) -> str:
    return (value or "").strip()


def display_name(profile: UserProfile | None, fallback: str | None = None) -> str:
    """Return the best available name for a profile.

    Order: company, full name, first plus last name, ``fallback`` (usually the
    raw identifier), then the generic placeholder.
    """
    if profile is not None:
        company = _clean(profile.company)
        if company:
            return company
        full_name = _clean(profile.full_name)
        if full_name:
            return full_name
        joined = " ".join(
            part for part in (_clean(profile.first_name), _clean(profile.last_name)) if part
        )
        if joined:
            return joined
    return _clean(fallback) or PLACEHOLDER_NAME


def normalize_avatar_url(url: str | None, base_url: str | None = None) -> str | None:
    """Expand a stored avatar reference into a public URL when possible."""
    value = _clean(url)
    if not value:
        return None
    if _ABSOLUTE_URL.match(value):
        return value

    base = (base_url if base_url is not None else settings.avatar_public_base_url) or ""
    base = base.rstrip("/")

    if value.startswith(f"/{PUBLIC_OBJECT_PATH}"):
        return f"{base}/{value.lstrip('/')}" if base else value
    if value.startswith(PUBLIC_OBJECT_PATH):
        return f"{base}/{value}" if base else f"/{value}"
    if _HOST_WITH_PUBLIC_PATH.match(value):
        return f"https://{value}"
    if base:
        path = re.sub(r"^/?public/", "", value)
        return f"{base}/{PUBLIC_OBJECT_PATH}{path}"
    if f"/{PUBLIC_OBJECT_PATH}" in value:
        return value
    return None
