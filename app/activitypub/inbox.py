"""
app/activitypub/inbox.py

Processamento das atividades recebidas no inbox (pessoal ou shared).

Fluxo de `receive()`:
1. Verifica a assinatura HTTP contra a chave pública do remetente
   (buscada no documento do actor remoto) → 401 se falhar
2. Interpreta o corpo como `Activity` → 400 se não for um objeto JSON
3. Despacha por tipo:
   - Follow → salva o follower e enfileira um Accept
   - Undo   → remove o Follow desfeito, se gravado para o mesmo actor
   - demais → ignorados
4. Responde 202 — o peer não precisa saber se a atividade teve efeito

Atividades malformadas de peers nunca levantam exceção; só erros de
persistência e de criptografia locais propagam.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping

from app.activitypub.activities import Activity, ActivityKind, new_accept, parse_activity
from app.activitypub.actor import Actor, ActorResolver
from app.activitypub.signatures import key_id_of, verify_request
from app.activitypub.uris import UriDispatcher, UriType
from app.errors import VerificationError
from app.services.followers import FollowerStore
from app.services.queue import DeliveryTask

log = logging.getLogger(__name__)

ActorFetcher = Callable[[str], Awaitable[Actor | None]]
ObjectFetcher = Callable[[str], Awaitable[dict | None]]


@dataclass(frozen=True)
class InboxResult:
    status_code: int
    detail: str = ""


ACCEPTED = InboxResult(202)


class InboxProcessor:
    def __init__(
        self,
        dispatcher: UriDispatcher,
        resolver: ActorResolver,
        followers: FollowerStore,
        fetch_actor: ActorFetcher,
        fetch_object: ObjectFetcher,
        queue: asyncio.Queue,
        signature_max_age: int = 3600,
    ) -> None:
        self.dispatcher = dispatcher
        self.resolver = resolver
        self.followers = followers
        self.fetch_actor = fetch_actor
        self.fetch_object = fetch_object
        self.queue = queue
        self.signature_max_age = signature_max_age

    # -----------------------------------------------------------------------
    # Entrada HTTP
    # -----------------------------------------------------------------------

    async def receive(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
        identifier: str | None = None,
    ) -> InboxResult:
        if identifier is not None and identifier != self.resolver.username:
            return InboxResult(404, "Not found")

        sender = await self.verify(method, url, headers, body)
        if sender is None:
            return InboxResult(401, "Invalid signature")

        try:
            doc = json.loads(body)
        except ValueError:
            log.warning(f"Corpo inválido recebido de {sender.uri}")
            return InboxResult(400, "Invalid JSON")
        if not isinstance(doc, dict):
            return InboxResult(400, "Invalid activity")

        activity = parse_activity(doc)
        if activity.actor_id is not None and activity.actor_id != sender.uri:
            log.warning(
                f"Atividade {activity.id} assinada por {sender.uri} "
                f"em nome de {activity.actor_id} — rejeitada"
            )
            return InboxResult(401, "Actor does not match signature")

        await self.process(activity)
        return ACCEPTED

    async def verify(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> Actor | None:
        """Devolve o actor remetente se a assinatura conferir, senão None."""
        try:
            key_id = key_id_of(headers)
        except VerificationError as e:
            log.warning(f"Assinatura rejeitada: {e}")
            return None

        sender = await self.fetch_actor(key_id)
        if sender is None:
            log.warning(f"Não foi possível obter a chave {key_id}")
            return None

        pems = [key.public_key_pem for key in sender.public_keys if key.id == key_id]
        if not pems:
            pems = [key.public_key_pem for key in sender.public_keys]
        if not pems:
            log.warning(f"Actor {sender.uri} não publica chave pública")
            return None

        for pem in pems:
            try:
                verify_request(method, url, headers, body, pem, self.signature_max_age)
                return sender
            except VerificationError as e:
                log.warning(f"Assinatura de {key_id} rejeitada: {e}")
        return None

    # -----------------------------------------------------------------------
    # Despacho por tipo
    # -----------------------------------------------------------------------

    async def process(self, activity: Activity) -> None:
        match activity.kind:
            case ActivityKind.FOLLOW:
                await self.on_follow(activity)
            case ActivityKind.UNDO:
                await self.on_undo(activity)
            case ActivityKind.ACCEPT:
                log.debug(f"Accept {activity.id} recebido e ignorado")
            case ActivityKind.UNKNOWN:
                log.debug(f"Atividade {activity.raw.get('type')!r} ignorada")

    async def on_follow(self, follow: Activity) -> None:
        if follow.id is None or follow.actor_id is None or follow.object_id is None:
            log.info("Follow sem id, actor ou object — ignorado")
            return

        parsed = self.dispatcher.parse_uri(follow.object_id)
        if parsed.type is not UriType.ACTOR or parsed.identifier != self.resolver.username:
            log.info(f"Follow {follow.id} não é para {self.resolver.username!r} — ignorado")
            return

        follower = await self.fetch_actor(follow.actor_id)
        if follower is None:
            log.info(f"Seguidor {follow.actor_id} não pôde ser resolvido — ignorado")
            return

        await self.followers.put(follow.id, follow.actor_id)

        accept = new_accept(
            follow,
            f"{self.dispatcher.build_actor_uri(parsed.identifier)}#accepts/{follow.id}",
        )
        await self.queue.put(DeliveryTask(parsed.identifier, follower, accept))
        log.info(f"{follower.uri} seguiu {parsed.identifier!r}, Accept enfileirado")

    async def on_undo(self, undo: Activity) -> None:
        target = undo.object
        if target is None and undo.object_id is not None:
            doc = await self.fetch_object(undo.object_id)
            if doc is not None:
                target = parse_activity(doc)

        if target is None or target.kind is not ActivityKind.FOLLOW:
            log.debug(f"Undo {undo.id} de algo que não é Follow — ignorado")
            return
        if target.id is None:
            log.info(f"Undo {undo.id} de Follow sem id — ignorado")
            return
        if target.actor_id is not None and target.actor_id != undo.actor_id:
            log.warning(f"Undo {undo.id} de um Follow de outro actor — ignorado")
            return

        # O Follow embutido vem do peer; quem manda é o seguidor gravado
        follower = await self.followers.get(target.id)
        if follower is None:
            log.debug(f"Follow {target.id} não está registrado — nada a desfazer")
            return
        if follower != undo.actor_id:
            log.warning(f"Undo {undo.id} de {undo.actor_id} para o Follow de {follower} — ignorado")
            return

        await self.followers.delete(target.id)
        log.info(f"{undo.actor_id} deixou de seguir (Follow {target.id})")
