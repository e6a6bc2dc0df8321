"""
ORM table for persisted alerts.

The table name and column names match the layout the downstream exporter
and map viewer read: `data(uuid, type, pubMillis, latitude, longitude)`.
"""

from __future__ import annotations

from sqlalchemy import REAL, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from alertcrawler.core.database import Base
from alertcrawler.ingestion.models import AlertRecord


class AlertRow(Base):
    __tablename__ = "data"

    uuid: Mapped[str] = mapped_column(Text, primary_key=True)
    type: Mapped[str] = mapped_column(Text, nullable=True)
    pub_millis: Mapped[int] = mapped_column("pubMillis", Integer, nullable=True)
    latitude: Mapped[float] = mapped_column(REAL, nullable=True)
    longitude: Mapped[float] = mapped_column(REAL, nullable=True)

    def to_record(self) -> AlertRecord:
        return AlertRecord(
            uuid=self.uuid,
            type=self.type,
            pub_millis=self.pub_millis,
            latitude=self.latitude,
            longitude=self.longitude,
        )
