"""
Gera (ou mostra, se já existir) o par de chaves RSA do bot no banco.
Uso: uv run python scripts/generate_keys.py
"""

import asyncio

from app.activitypub.keys import KeyManager, public_key_pem
from app.config import settings
from app.database import async_session_factory, init_db
from app.storage.kv import SqlKvStore


async def main() -> None:
    await init_db()
    manager = KeyManager(SqlKvStore(async_session_factory), key_size=settings.key_size)
    pairs = await manager.get_or_create_key_pairs(settings.bot_username)

    print(f"✓ {len(pairs)} par(es) de chaves para @{settings.bot_username}@{settings.domain}")
    print(public_key_pem(pairs[0].public_key))


if __name__ == "__main__":
    asyncio.run(main())
