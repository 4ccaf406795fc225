"""Warehouse model (minimal: stock locations referenced by the inventory tables)."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class Warehouse(BaseModel):
    """Physical stock location.

    Master-data management lives outside this service; the inventory core only
    needs to look warehouses up and check that they are active.
    """

    __tablename__ = "warehouses"
    uid_prefix = "WHS"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
