"""
app/activitypub/delivery.py

Entrega de atividades assinadas no inbox de outros servidores.

A assinatura (draft-cavage) e o POST ficam com o `ActivityPubClient` do apkit.
A entrega é best-effort: falha de rede ou resposta não-2xx vira um
`DeliveryResult` com `ok=False` e não há retry aqui. Falta de chave para
assinar levanta `CryptoError`.
"""

import asyncio
import logging
from dataclasses import dataclass

import aiohttp
from apkit.client.asyncio.client import ActivityPubClient
from apkit.types import ActorKey

from app.activitypub.activities import Activity
from app.activitypub.actor import Actor
from app.activitypub.keys import KeyManager
from app.activitypub.signatures import ACTIVITY_JSON
from app.activitypub.uris import UriDispatcher
from app.errors import CryptoError, DeliveryError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    inbox: str | None = None
    status_code: int | None = None
    error: str | None = None


class ActivityDelivery:
    def __init__(
        self,
        dispatcher: UriDispatcher,
        key_manager: KeyManager,
        timeout: float = 15,
    ) -> None:
        self.dispatcher = dispatcher
        self.key_manager = key_manager
        self.timeout = timeout

    async def send_activity(
        self,
        sender: str,
        recipient: Actor,
        activity: Activity,
        shared: bool = False,
    ) -> DeliveryResult:
        inbox = recipient.shared_inbox if shared and recipient.shared_inbox else recipient.inbox

        pairs = await self.key_manager.get_or_create_key_pairs(sender)
        if not pairs:
            raise CryptoError(f"Nenhuma chave para assinar em nome de {sender!r}")
        key = ActorKey(key_id=self.dispatcher.build_key_id(sender), private_key=pairs[0].private_key)

        try:
            status_code = await self._post(inbox, activity.to_json(), key)
        except DeliveryError as e:
            log.warning(f"Entrega de {activity.kind.value} para {inbox} recusada: {e}")
            return DeliveryResult(ok=False, inbox=inbox, status_code=e.status_code, error=str(e))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning(f"Entrega de {activity.kind.value} para {inbox} falhou: {e!r}")
            return DeliveryResult(ok=False, inbox=inbox, error=str(e) or type(e).__name__)

        log.info(f"{activity.kind.value} entregue em {inbox} (status {status_code})")
        return DeliveryResult(ok=True, inbox=inbox, status_code=status_code)

    async def _post(self, inbox: str, doc: dict, key: ActorKey) -> int:
        async with ActivityPubClient(timeout=aiohttp.ClientTimeout(total=self.timeout)) as client:
            async with client.post(
                    inbox,
                    json=doc,
                    headers={"Content-Type": ACTIVITY_JSON},
                    signatures=[key],
                    sign_with=["draft-cavage"],
            ) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise DeliveryError(f"HTTP {response.status}: {body[:200]}", response.status)
                return response.status
