from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from gateway.core.db import Base


class Option(Base):
    """Host-style key/value setting (disabled abilities, allow-listed users)."""

    __tablename__ = "options"

    name: Mapped[str] = mapped_column(
        String(191),
        primary_key=True,
    )

    value: Mapped[Any] = mapped_column(
        JSON,
        nullable=True,
    )
