import uuid
from typing import ClassVar
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from src.shared.utils.dates import utc_now

# BigInteger for PostgreSQL, Integer for SQLite (required for autoincrement)
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def generate_uid(prefix: str) -> str:
    """Public identifier: PREFIX + 24 hex chars, e.g. BAT3f9c0d...."""
    return f"{prefix}{uuid.uuid4().hex[:24]}"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class BaseModel(Base):
    """Base model with common fields: id, uid, created_at, updated_at.

    Subclasses set ``uid_prefix``. Timestamps get a Python-side value as well as the
    server default so they are readable right after flush without a refresh.
    """

    __abstract__ = True

    uid_prefix: ClassVar[str] = "UID"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    @declared_attr
    def uid(cls) -> Mapped[str]:
        prefix = cls.uid_prefix
        return mapped_column(
            String(40),
            nullable=False,
            unique=True,
            index=True,
            default=lambda: generate_uid(prefix),
        )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )
