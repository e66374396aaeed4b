from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db import Base


class Paste(Base):
    """Paste entity persisted via SQLAlchemy. Instants are epoch milliseconds."""

    __tablename__ = "pastes"
    __table_args__ = (
        CheckConstraint(
            "max_views IS NULL OR max_views >= 0",
            name="ck_pastes_max_views_non_negative",
        ),
        CheckConstraint("views >= 0", name="ck_pastes_views_non_negative"),
        CheckConstraint(
            "max_views IS NULL OR views <= max_views",
            name="ck_pastes_views_within_quota",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    max_views: Mapped[int | None] = mapped_column(Integer, nullable=True)
    views: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    @validates("content")
    def _validate_immutable_content(self, key: str, value: str) -> str:
        """
        Enforce that ``content`` is immutable after initial creation.

        The value can be set on new instances, but any subsequent attempt to
        change it will raise an error.
        """

        if getattr(self, "content", None) is not None and self.content != value:
            raise ValueError("Paste content is immutable and cannot be modified.")
        return value
