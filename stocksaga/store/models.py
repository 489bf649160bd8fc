"""
Store Service — Read-replica models

Mirrors of inventory state, written only by the event consumer. Primary keys
are the inventory ids, never generated locally.
"""
from datetime import datetime
from sqlalchemy import String, Integer, Float, DateTime, func, Text
from sqlalchemy.orm import Mapped, mapped_column
from stocksaga.core.database import Base


class StoreCategory(Base):
    __tablename__ = "store_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class StoreProduct(Base):
    __tablename__ = "store_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    category_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # version of the last applied inventory event; NULL when it carried none
    version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
