"""
app/federation.py

Monta os serviços do núcleo de federação a partir das settings.

Não é um objeto de contexto: cada serviço recebe explicitamente o que usa
e `Federation` apenas os agrupa para as rotas e o worker.
"""

import asyncio
from dataclasses import dataclass
from functools import partial

from app.activitypub import remote
from app.activitypub.actor import ActorResolver
from app.activitypub.delivery import ActivityDelivery
from app.activitypub.inbox import InboxProcessor
from app.activitypub.keys import KeyManager
from app.activitypub.uris import UriDispatcher
from app.config import settings
from app.services.followers import FollowerStore
from app.services.queue import delivery_queue
from app.storage.kv import KvStore


@dataclass
class Federation:
    kv: KvStore
    dispatcher: UriDispatcher
    keys: KeyManager
    followers: FollowerStore
    resolver: ActorResolver
    delivery: ActivityDelivery
    inbox: InboxProcessor
    queue: asyncio.Queue


def create_federation(
    kv: KvStore,
    queue: asyncio.Queue | None = None,
    fetch_actor=None,
    fetch_object=None,
) -> Federation:
    """`fetch_actor` / `fetch_object` podem ser trocados nos testes."""
    queue = delivery_queue if queue is None else queue
    dispatcher = UriDispatcher(settings.domain)
    keys = KeyManager(kv, key_size=settings.key_size)
    followers = FollowerStore(kv)
    resolver = ActorResolver(
        dispatcher,
        keys,
        username=settings.bot_username,
        display_name=settings.bot_display_name,
        summary=settings.bot_summary,
    )
    inbox = InboxProcessor(
        dispatcher,
        resolver,
        followers,
        fetch_actor=fetch_actor or partial(remote.fetch_actor, timeout=settings.fetch_timeout),
        fetch_object=fetch_object or partial(remote.fetch_object, timeout=settings.fetch_timeout),
        queue=queue,
        signature_max_age=settings.signature_max_age,
    )
    return Federation(
        kv=kv,
        dispatcher=dispatcher,
        keys=keys,
        followers=followers,
        resolver=resolver,
        delivery=ActivityDelivery(dispatcher, keys, timeout=settings.delivery_timeout),
        inbox=inbox,
        queue=queue,
    )
