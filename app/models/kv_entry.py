"""
app/models/kv_entry.py

Modelo ORM do armazenamento chave-valor.

Cada linha guarda um valor JSON sob um caminho de chave. O caminho
(ex: ["followers", "https://mastodon.social/users/fulano#follows/1"])
é serializado como array JSON, o que preserva componentes que contêm "/".
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class KvEntry(Base):
    __tablename__ = "kv_entries"

    # Caminho da chave serializado — ex: '["keys", "demo"]'
    key: Mapped[str] = mapped_column(String(4096), primary_key=True)

    value: Mapped[Any] = mapped_column(JSON)

    # onupdate garante o timestamp também em sobrescritas via set()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<KvEntry key={self.key!r}>"
