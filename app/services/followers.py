"""
app/services/followers.py

Relações de follow persistidas no armazenamento chave-valor.

Chave: ["followers", <id da atividade Follow>] → URI do actor seguidor.
Um mesmo seguidor pode ter vários Follows guardados (ex: seguiu, desfez
e seguiu de novo com outro id); `list_all()` deduplica na leitura.
"""

import logging

from app.storage.kv import KvStore

log = logging.getLogger(__name__)

PREFIX = "followers"


class FollowerStore:
    def __init__(self, kv: KvStore) -> None:
        self.kv = kv

    async def put(self, activity_id: str, follower_uri: str) -> None:
        await self.kv.set((PREFIX, activity_id), follower_uri)
        log.info(f"Follower {follower_uri} salvo (Follow {activity_id})")

    async def get(self, activity_id: str) -> str | None:
        """URI do seguidor registrado para o Follow, ou None."""
        return await self.kv.get((PREFIX, activity_id))

    async def delete(self, activity_id: str) -> None:
        await self.kv.delete((PREFIX, activity_id))
        log.info(f"Follow {activity_id} removido")

    async def list_all(self) -> list[str]:
        """URIs distintas dos followers, na ordem em que aparecem no armazenamento."""
        followers: list[str] = []
        async for _, value in self.kv.list((PREFIX,)):
            if value not in followers:
                followers.append(value)
        return followers
