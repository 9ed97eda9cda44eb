import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from apkit.server.app import ActivityPubServer
from apkit.server.responses import ActivityResponse
from apkit.models import (
    Nodeinfo, NodeinfoSoftware,
    NodeinfoServices, NodeinfoUsage, NodeinfoUsageUsers,
)
from apkit.client import WebfingerResource, WebfingerResult, WebfingerLink

from app.activitypub.activities import AS_CONTEXT
from app.activitypub.signatures import ACTIVITY_JSON
from app.database import async_session_factory
from app.errors import CryptoError, PersistenceError
from app.federation import create_federation
from app.storage.kv import SqlKvStore

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

federation = create_federation(SqlKvStore(async_session_factory))


@asynccontextmanager
async def lifespan(app):
    import app.database
    import workers.delivery_worker
    await app.database.init_db()
    worker_task = asyncio.create_task(
        workers.delivery_worker.run_worker(federation.delivery, federation.queue)
    )
    yield
    worker_task.cancel()
    await app.database.dispose_db()


api = ActivityPubServer(lifespan=lifespan)


@api.exception_handler(PersistenceError)
@api.exception_handler(CryptoError)
async def federation_error(request: Request, exc: Exception) -> JSONResponse:
    log.error(f"{type(exc).__name__} em {request.url.path}: {exc}")
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@api.get("/users/{identifier}")
async def get_actor(identifier: str):
    actor = await federation.resolver.resolve_actor(identifier)
    if actor is None:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return ActivityResponse(actor.to_person())


@api.get("/users/{identifier}/followers")
async def get_followers(identifier: str):
    if identifier != federation.resolver.username:
        return JSONResponse({"error": "Not found"}, status_code=404)
    followers = await federation.followers.list_all()
    return JSONResponse(
        {
            "@context": AS_CONTEXT,
            "id": federation.dispatcher.build_followers_uri(identifier),
            "type": "OrderedCollection",
            "totalItems": len(followers),
            "orderedItems": followers,
        },
        media_type=ACTIVITY_JSON,
    )


async def _inbox(request: Request, identifier: str | None = None) -> Response:
    result = await federation.inbox.receive(
        request.method,
        str(request.url),
        dict(request.headers),
        await request.body(),
        identifier=identifier,
    )
    if result.status_code == 202:
        return Response(status_code=202)
    return JSONResponse({"error": result.detail}, status_code=result.status_code)


@api.post("/users/{identifier}/inbox")
async def post_inbox(identifier: str, request: Request):
    return await _inbox(request, identifier)


@api.post("/inbox")
async def post_shared_inbox(request: Request):
    return await _inbox(request)


@api.webfinger()
async def webfinger(request: Request, acct: WebfingerResource) -> Response:
    identifier = federation.dispatcher.parse_acct(str(acct))
    actor = await federation.resolver.resolve_actor(identifier) if identifier else None
    if actor is None:
        return JSONResponse({"error": "Not found"}, status_code=404)

    link = WebfingerLink(
        rel="self",
        type=ACTIVITY_JSON,
        href=actor.uri,
    )
    subject = WebfingerResource.parse(federation.dispatcher.build_webfinger_subject(identifier))
    result = WebfingerResult(subject=subject, links=[link])
    return JSONResponse(result.to_json(), media_type="application/jrd+json")


@api.nodeinfo("/nodeinfo/2.1", "2.1")
async def nodeinfo():
    return ActivityResponse(
        Nodeinfo(
            version="2.1",
            software=NodeinfoSoftware(name="follow-bot", version="1.0.0"),
            protocols=["activitypub"],
            services=NodeinfoServices(inbound=[], outbound=[]),
            openRegistrations=False,
            usage=NodeinfoUsage(users=NodeinfoUsageUsers(total=1)),
            metadata={},
        )
    )


@api.get("/health")
async def health():
    return {"status": "ok"}
