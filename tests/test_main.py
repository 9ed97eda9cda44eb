"""
Testes para app/main.py

Testa os endpoints HTTP diretamente via httpx.AsyncClient + ASGITransport,
que é a forma recomendada para testar apps FastAPI/Starlette assíncronos.
Os serviços de `app.main.federation` são trocados pelos da fixture
(armazenamento em memória, peers simulados).

Cobre:
- GET /users/{username}            → 200 com Actor JSON-LD do bot
- GET /users/{username}            → 404 para username desconhecido
- GET /users/{username}/followers  → coleção com os followers deduplicados
- POST /users/{username}/inbox     → 202 para Follow assinado, 401 sem assinatura
- POST /inbox                      → shared inbox processa Undo
- GET /.well-known/webfinger       → 200 com JRD correto / 404
- GET /nodeinfo/2.1, GET /health
- Erro de persistência             → 500
- Lifespan: init_db e run_worker são chamados no startup
"""

import json

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient, ASGITransport


# ---------------------------------------------------------------------------
# Fixture do cliente de teste
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(federation, monkeypatch):
    with (
        patch("app.database.init_db", AsyncMock()),
        patch("workers.delivery_worker.run_worker", AsyncMock()),
    ):
        from app import main
        monkeypatch.setattr(main, "federation", federation)

        async with AsyncClient(
                transport=ASGITransport(app=main.api),
                base_url="https://bot.test",
        ) as ac:
            yield ac


async def _post_signed(client, signed_post, doc, url="https://bot.test/users/testbot/inbox"):
    url, headers, body = signed_post(doc, url)
    return await client.post(url, content=body, headers=headers)


# ---------------------------------------------------------------------------
# GET /users/{identifier}
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_actor_returns_200_for_bot(client):
    response = await client.get("/users/testbot")

    assert response.status_code == 200
    assert "application/activity+json" in response.headers["content-type"]


@pytest.mark.asyncio
async def test_get_actor_body(client):
    data = (await client.get("/users/testbot")).json()

    assert data["id"] == "https://bot.test/users/testbot"
    assert data["inbox"] == "https://bot.test/users/testbot/inbox"
    assert data["endpoints"]["sharedInbox"] == "https://bot.test/inbox"
    assert "BEGIN PUBLIC KEY" in data["publicKey"]["publicKeyPem"]
    assert data["manuallyApprovesFollowers"] is False


@pytest.mark.asyncio
async def test_get_actor_returns_404_for_unknown_user(client):
    response = await client.get("/users/outrobot")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_signed_follow_is_accepted(client, federation, signed_post, make_follow):
    response = await _post_signed(client, signed_post, make_follow())

    assert response.status_code == 202
    assert await federation.followers.list_all() == ["https://mastodon.social/users/fulano"]
    assert federation.queue.qsize() == 1


@pytest.mark.asyncio
async def test_unsigned_follow_is_unauthorized(client, federation, make_follow):
    response = await client.post(
        "/users/testbot/inbox",
        content=json.dumps(make_follow()),
        headers={"Content-Type": "application/activity+json"},
    )

    assert response.status_code == 401
    assert await federation.followers.list_all() == []


@pytest.mark.asyncio
async def test_malformed_follow_is_acknowledged_without_reply(client, federation, signed_post, make_follow):
    response = await _post_signed(client, signed_post, make_follow(obj="https://bot.test/users/outro"))

    assert response.status_code == 202
    assert federation.queue.empty()


@pytest.mark.asyncio
async def test_undo_through_shared_inbox(client, federation, signed_post, make_follow, make_undo):
    await _post_signed(client, signed_post, make_follow())

    response = await _post_signed(
        client, signed_post, make_undo(make_follow()), url="https://bot.test/inbox"
    )

    assert response.status_code == 202
    assert await federation.followers.list_all() == []


@pytest.mark.asyncio
async def test_inbox_of_unknown_user_returns_404(client, signed_post, make_follow):
    response = await _post_signed(
        client, signed_post, make_follow(), url="https://bot.test/users/outrobot/inbox"
    )

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# GET /users/{identifier}/followers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_followers_collection(client, federation):
    await federation.followers.put("https://a.example/follows/1", "https://a.example/users/a")
    await federation.followers.put("https://a.example/follows/2", "https://a.example/users/a")

    data = (await client.get("/users/testbot/followers")).json()

    assert data["type"] == "OrderedCollection"
    assert data["totalItems"] == 1
    assert data["orderedItems"] == ["https://a.example/users/a"]


@pytest.mark.asyncio
async def test_followers_of_unknown_user_returns_404(client):
    response = await client.get("/users/outrobot/followers")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# GET /.well-known/webfinger
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_webfinger_returns_jrd_for_bot(client):
    response = await client.get(
        "/.well-known/webfinger",
        params={"resource": "acct:testbot@bot.test"},
    )
    data = response.json()

    assert response.status_code == 200
    assert "application/jrd+json" in response.headers["content-type"]
    assert data["subject"] == "acct:testbot@bot.test"
    self_links = [l for l in data["links"] if l["rel"] == "self"]
    assert self_links[0]["href"] == "https://bot.test/users/testbot"
    assert self_links[0]["type"] == "application/activity+json"


@pytest.mark.asyncio
async def test_webfinger_host_is_case_insensitive(client):
    response = await client.get(
        "/.well-known/webfinger",
        params={"resource": "acct:testbot@BOT.Test"},
    )

    assert response.status_code == 200
    assert response.json()["subject"] == "acct:testbot@bot.test"


@pytest.mark.asyncio
async def test_webfinger_returns_404_for_unknown_user(client):
    response = await client.get(
        "/.well-known/webfinger",
        params={"resource": "acct:fantasma@bot.test"},
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_webfinger_returns_404_for_wrong_domain(client):
    response = await client.get(
        "/.well-known/webfinger",
        params={"resource": "acct:testbot@outro.dominio.com"},
    )

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# GET /nodeinfo/2.1 e /health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_nodeinfo(client):
    response = await client.get("/nodeinfo/2.1")
    data = response.json()

    assert response.status_code == 200
    assert data["software"]["name"] == "follow-bot"
    assert "activitypub" in data["protocols"]
    assert data["openRegistrations"] is False


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Falhas locais
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_persistence_error_returns_500(client, federation):
    from app.errors import PersistenceError

    federation.followers.list_all = AsyncMock(side_effect=PersistenceError("banco fora do ar"))

    response = await client.get("/users/testbot/followers")

    assert response.status_code == 500


# ---------------------------------------------------------------------------
# Lifespan: inicialização e shutdown
# ---------------------------------------------------------------------------

from asgi_lifespan import LifespanManager


@pytest.mark.asyncio
async def test_lifespan_calls_init_db():
    mock_init_db = AsyncMock()

    import sys
    sys.modules.pop("app.main", None)

    with (
        patch("app.database.init_db", mock_init_db),
        patch("workers.delivery_worker.run_worker", AsyncMock()),
    ):
        from app.main import api

        async with LifespanManager(api):
            pass

    mock_init_db.assert_called_once()


@pytest.mark.asyncio
async def test_lifespan_starts_worker():
    mock_run_worker = AsyncMock()

    import sys
    sys.modules.pop("app.main", None)

    with (
        patch("app.database.init_db", AsyncMock()),
        patch("workers.delivery_worker.run_worker", mock_run_worker),
    ):
        from app import main

        async with LifespanManager(main.api):
            pass

    mock_run_worker.assert_called_once_with(main.federation.delivery, main.federation.queue)
