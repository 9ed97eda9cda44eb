"""
app/activitypub/remote.py

Busca de recursos em outros servidores.

- `fetch_actor()`  — resolve o documento de um actor remoto via apkit
- `fetch_object()` — desreferencia uma URI qualquer (ex: o Follow de um Undo)

Toda falha de um peer (timeout, HTTP, JSON inválido, documento incompleto)
vira `None` e um log — input de servidor remoto nunca derruba o request.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import urldefrag

import aiohttp
from apkit.client.asyncio.client import ActivityPubClient

from app.activitypub.actor import Actor, PublicKeyDescriptor
from app.activitypub.signatures import ACTIVITY_JSON

log = logging.getLogger(__name__)


def _uri(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    ref = getattr(value, "id", None)
    return ref if isinstance(ref, str) and ref else None


def actor_from_remote(remote: Any) -> Actor | None:
    """Converte o actor do apkit no nosso `Actor`; None se faltar id ou inbox."""
    actor_id = _uri(getattr(remote, "id", None))
    inbox = _uri(getattr(remote, "inbox", None))
    if not actor_id or not inbox:
        return None

    endpoints = getattr(remote, "endpoints", None)
    shared_inbox = None
    if isinstance(endpoints, dict):
        shared_inbox = endpoints.get("sharedInbox")
    elif endpoints is not None:
        shared_inbox = _uri(getattr(endpoints, "shared_inbox", None))

    public_keys: tuple[PublicKeyDescriptor, ...] = ()
    key = getattr(remote, "public_key", None)
    pem = getattr(key, "public_key_pem", None)
    if isinstance(pem, str) and pem:
        public_keys = (
            PublicKeyDescriptor(
                id=_uri(getattr(key, "id", None)) or f"{actor_id}#main-key",
                owner=_uri(getattr(key, "owner", None)) or actor_id,
                public_key_pem=pem,
            ),
        )

    return Actor(
        identifier=getattr(remote, "preferred_username", None) or actor_id,
        uri=actor_id,
        inbox=inbox,
        name=getattr(remote, "name", None),
        shared_inbox=shared_inbox,
        public_keys=public_keys,
    )


async def fetch_actor(uri: str, timeout: float = 10) -> Actor | None:
    # O keyId costuma ser "<actor>#main-key"; o documento é o do actor
    actor_uri, _ = urldefrag(uri)

    async def _fetch():
        async with ActivityPubClient() as client:
            return await client.actor.fetch(actor_uri)

    try:
        remote = await asyncio.wait_for(_fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning(f"Timeout ao buscar actor {actor_uri}")
        return None
    except Exception as e:
        log.warning(f"Falha ao buscar actor {actor_uri}: {e}")
        return None

    actor = actor_from_remote(remote) if remote else None
    if actor is None:
        log.warning(f"Actor {actor_uri} não pôde ser resolvido")
    return actor


async def fetch_object(uri: str, timeout: float = 10) -> dict | None:
    # GET sem assinatura: o sign_request do apkit monta o (request-target) como POST
    async def _fetch():
        async with ActivityPubClient() as client:
            async with client.get(uri, headers={"Accept": ACTIVITY_JSON}) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

    try:
        data = await asyncio.wait_for(_fetch(), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning(f"Timeout ao buscar objeto {uri}")
        return None
    except (aiohttp.ClientError, ValueError) as e:
        log.warning(f"Falha ao buscar objeto {uri}: {e}")
        return None

    if not isinstance(data, dict):
        log.warning(f"Objeto {uri} não é um documento JSON")
        return None
    return data
