"""
app/database.py

Banco do armazenamento chave-valor (`app/storage/kv.py`): uma única tabela,
`kv_entries`, onde ficam os pares de chaves do actor e os Follows aceitos.

O padrão é SQLite via aiosqlite (`DATABASE_URL` em settings.toml); qualquer
URL assíncrona do SQLAlchemy serve.

Exporta:
- `engine`, `async_session_factory` — usados pelo `SqlKvStore`
- `Base`                            — base declarativa de `KvEntry`
- `init_db()` / `dispose_db()`      — startup e shutdown no lifespan
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


def _connect_args(database_url: str) -> dict:
    # O worker de entrega e os requests compartilham o arquivo SQLite
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"check_same_thread": False}
    return {}


engine = create_async_engine(
    settings.database_url,
    echo=False,
    connect_args=_connect_args(settings.database_url),
)

async_session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Cria `kv_entries` se ainda não existir."""
    # Registra KvEntry no metadata antes do create_all
    from app.models import kv_entry  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    await engine.dispose()
