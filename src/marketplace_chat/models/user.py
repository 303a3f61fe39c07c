# src/marketplace_chat/models/user.py
"""SQLAlchemy model for marketplace user profiles."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_chat.db.session import Base

from ._ids import new_id


class UserProfile(Base):
    """Identity-bearing marketplace account with its public profile fields.

    The plan code is owned by the billing subsystem; messaging only reads it.
    """

    __tablename__ = "user_profile"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)

    company: Mapped[str | None] = mapped_column(Text, nullable=True)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    plan_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    @property
    def email_local_part(self) -> str:
        """Return the part of the email before the ``@``."""
        return self.email.split("@", 1)[0]
