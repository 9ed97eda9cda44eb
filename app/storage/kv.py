"""
app/storage/kv.py

Armazenamento chave-valor usado pelo núcleo de federação.

Chaves são caminhos (sequências de strings), ex: ("followers", "<id do Follow>").
A única garantia de atomicidade é por chave; `set_if_absent` é o único ponto
de exclusão mútua e funciona entre processos quando o backend é o banco.

Implementações:
- `MemoryKvStore` — dicionário em memória, para testes e execução local
- `SqlKvStore`    — tabela `kv_entries` via SQLAlchemy assíncrono
"""

import json
import logging
from typing import Any, AsyncIterator, Protocol, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import PersistenceError
from app.models.kv_entry import KvEntry

log = logging.getLogger(__name__)

KeyPath = tuple[str, ...]


def encode_key(key: Sequence[str]) -> str:
    return json.dumps(list(key), ensure_ascii=False)


def decode_key(raw: str) -> KeyPath:
    return tuple(json.loads(raw))


def _encoded_prefix(prefix: Sequence[str]) -> str:
    """
    Prefixo textual que todas as chaves filhas de `prefix` compartilham.
    '["followers"]' → '["followers", '
    """
    if not prefix:
        return "["
    return encode_key(prefix)[:-1] + ", "


class KvStore(Protocol):
    async def get(self, key: Sequence[str]) -> Any | None: ...

    async def set(self, key: Sequence[str], value: Any) -> None: ...

    async def set_if_absent(self, key: Sequence[str], value: Any) -> bool: ...

    async def delete(self, key: Sequence[str]) -> None: ...

    def list(self, prefix: Sequence[str]) -> AsyncIterator[tuple[KeyPath, Any]]: ...


# ---------------------------------------------------------------------------
# Memória
# ---------------------------------------------------------------------------


class MemoryKvStore:
    """Sem `await` entre leitura e escrita: cada operação é atômica no event loop."""

    def __init__(self) -> None:
        self._data: dict[KeyPath, Any] = {}

    async def get(self, key: Sequence[str]) -> Any | None:
        return self._data.get(tuple(key))

    async def set(self, key: Sequence[str], value: Any) -> None:
        self._data[tuple(key)] = value

    async def set_if_absent(self, key: Sequence[str], value: Any) -> bool:
        key = tuple(key)
        if key in self._data:
            return False
        self._data[key] = value
        return True

    async def delete(self, key: Sequence[str]) -> None:
        self._data.pop(tuple(key), None)

    async def list(self, prefix: Sequence[str]) -> AsyncIterator[tuple[KeyPath, Any]]:
        prefix = tuple(prefix)
        # Snapshot: mutações durante a iteração não afetam o resultado
        for key, value in list(self._data.items()):
            if len(key) > len(prefix) and key[: len(prefix)] == prefix:
                yield key, value


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


class SqlKvStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: Sequence[str]) -> Any | None:
        try:
            async with self._session_factory() as session:
                entry = await session.get(KvEntry, encode_key(key))
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Falha ao ler {list(key)}: {e}") from e

    async def set(self, key: Sequence[str], value: Any) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(KvEntry(key=encode_key(key), value=value))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Falha ao gravar {list(key)}: {e}") from e

    async def set_if_absent(self, key: Sequence[str], value: Any) -> bool:
        """
        Insere apenas se a chave não existir. A unicidade da chave primária
        decide a corrida: o segundo INSERT falha e nada é gravado.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(KvEntry(key=encode_key(key), value=value))
            return True
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            raise PersistenceError(f"Falha ao gravar {list(key)}: {e}") from e

    async def delete(self, key: Sequence[str]) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(KvEntry).where(KvEntry.key == encode_key(key))
                    )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Falha ao remover {list(key)}: {e}") from e

    async def list(self, prefix: Sequence[str]) -> AsyncIterator[tuple[KeyPath, Any]]:
        prefix = tuple(prefix)
        stmt = select(KvEntry).where(
            KvEntry.key.startswith(_encoded_prefix(prefix), autoescape=True)
        )
        try:
            async with self._session_factory() as session:
                entries = (await session.scalars(stmt)).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Falha ao listar {list(prefix)}: {e}") from e

        for entry in entries:
            key = decode_key(entry.key)
            if len(key) > len(prefix) and key[: len(prefix)] == prefix:
                yield key, entry.value
