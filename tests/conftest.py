"""
Fixtures compartilhadas entre todos os testes.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa


# ---------------------------------------------------------------------------
# Chaves RSA geradas em memória — evita gerar uma chave por teste
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_private_key():
    """Chave do bot, gerada uma única vez por sessão de testes."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def remote_private_key():
    """Chave do actor remoto que assina as atividades enviadas ao inbox."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


# ---------------------------------------------------------------------------
# Configuração Dynaconf isolada para testes
# Usa monkeypatch para sobrescrever os atributos sem tocar em arquivos .toml
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Sobrescreve as settings do Dynaconf com valores de teste.
    `autouse=True` garante que nenhum teste acesse configurações reais.
    """
    from app import config

    monkeypatch.setattr(config.settings, "domain", "bot.test")
    monkeypatch.setattr(config.settings, "bot_username", "testbot")
    monkeypatch.setattr(config.settings, "bot_display_name", "Test Bot")
    monkeypatch.setattr(config.settings, "bot_summary", "Bot de teste")
    monkeypatch.setattr(config.settings, "database_url", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(config.settings, "fetch_timeout", 1)
    monkeypatch.setattr(config.settings, "delivery_timeout", 1)
    monkeypatch.setattr(config.settings, "key_size", 2048)
    monkeypatch.setattr(config.settings, "signature_max_age", 3600)


# ---------------------------------------------------------------------------
# Serviços do núcleo
# ---------------------------------------------------------------------------


@pytest.fixture
def bot_actor_url() -> str:
    return "https://bot.test/users/testbot"


@pytest.fixture
def remote_actor_url() -> str:
    return "https://mastodon.social/users/fulano"


@pytest.fixture
def kv():
    from app.storage.kv import MemoryKvStore

    return MemoryKvStore()


@pytest.fixture
def dispatcher():
    from app.activitypub.uris import UriDispatcher

    return UriDispatcher("bot.test")


@pytest.fixture
def seed_keys(kv, rsa_private_key):
    """Grava a chave da sessão no armazenamento, como se já tivesse sido gerada."""
    from app.activitypub.keys import KeyPair, export_key_pair

    pair = KeyPair("testbot", rsa_private_key, rsa_private_key.public_key())
    kv._data[("keys", "testbot")] = [export_key_pair(pair)]
    return pair


@pytest.fixture
def make_remote_actor(remote_actor_url, remote_private_key):
    """Factory do `Actor` remoto, com a chave pública de `remote_private_key`."""
    from app.activitypub.actor import Actor, PublicKeyDescriptor
    from app.activitypub.keys import public_key_pem

    def _make(url: str | None = None, key=None) -> Actor:
        url = url or remote_actor_url
        key = key or remote_private_key
        return Actor(
            identifier=url.rstrip("/").split("/")[-1],
            uri=url,
            inbox=f"{url}/inbox",
            shared_inbox="https://mastodon.social/inbox",
            public_keys=(
                PublicKeyDescriptor(
                    id=f"{url}#main-key",
                    owner=url,
                    public_key_pem=public_key_pem(key.public_key()),
                ),
            ),
        )

    return _make


@pytest.fixture
def fetch_actor(make_remote_actor):
    """Resolve qualquer URI (inclusive o keyId com fragmento) para o actor remoto."""

    async def _fetch(uri: str):
        return make_remote_actor(uri.split("#")[0])

    return AsyncMock(side_effect=_fetch)


@pytest.fixture
def fetch_object():
    return AsyncMock(return_value=None)


@pytest.fixture
def delivery_queue():
    return asyncio.Queue()


@pytest.fixture
def federation(kv, seed_keys, delivery_queue, fetch_actor, fetch_object):
    from app.federation import create_federation

    return create_federation(
        kv,
        queue=delivery_queue,
        fetch_actor=fetch_actor,
        fetch_object=fetch_object,
    )


# ---------------------------------------------------------------------------
# Factories de atividades recebidas
# ---------------------------------------------------------------------------


@pytest.fixture
def make_follow(remote_actor_url, bot_actor_url):
    def _make(
        follow_id: str | None = "https://mastodon.social/users/fulano#follows/1",
        actor: str | None = None,
        obj: str | None = None,
    ) -> dict:
        doc = {
            "@context": "https://www.w3.org/ns/activitystreams",
            "type": "Follow",
            "actor": actor or remote_actor_url,
            "object": obj or bot_actor_url,
        }
        if follow_id is not None:
            doc["id"] = follow_id
        return doc

    return _make


@pytest.fixture
def make_undo(remote_actor_url):
    def _make(obj, undo_id: str = "https://mastodon.social/users/fulano#undo/1") -> dict:
        return {
            "@context": "https://www.w3.org/ns/activitystreams",
            "id": undo_id,
            "type": "Undo",
            "actor": remote_actor_url,
            "object": obj,
        }

    return _make


@pytest.fixture
def signed_post(remote_private_key, remote_actor_url):
    """Monta (url, headers, body) de um POST assinado pelo actor remoto via apsig."""
    import json

    from apsig.draft.sign import Signer

    def _make(doc: dict, url: str = "https://bot.test/users/testbot/inbox", key=None):
        body = json.dumps(doc).encode("utf-8")
        headers = Signer(
            headers={"Content-Type": "application/activity+json"},
            private_key=key or remote_private_key,
            method="POST",
            url=url,
            key_id=f"{remote_actor_url}#main-key",
            body=body,
            signed_headers=["(request-target)", "host", "date", "digest", "content-type"],
        ).sign()
        return url, headers, body

    return _make
