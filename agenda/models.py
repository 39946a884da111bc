from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def adesso() -> datetime:
    return datetime.now(timezone.utc)


class ValoreArchivio(Base):
    """Coppia chiave/valore (JSON) dell'archivio persistente: cache giornaliere, bozze di selezione."""

    __tablename__ = "archivio_kv"

    chiave: Mapped[str] = mapped_column(String(200), primary_key=True)
    valore: Mapped[str] = mapped_column(Text, nullable=False)
    aggiornato_il: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=adesso, onupdate=adesso, nullable=False)

    def __repr__(self) -> str:
        return f"ValoreArchivio({self.chiave})"
