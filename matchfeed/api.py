# api.py — FastAPI surface over the feed and like reconciliation, uvicorn in-process
import asyncio, logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from . import config
from .engine import database
from .engine.likes import LikeReconciler
from .engine.match_engine import find_candidates
from .errors import CandidateSearchError, InvalidLikeError, LikeWriteError, LikesLookupError, ReconcileError

log = logging.getLogger("api")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    owned = database.get_backend() is None
    if owned:
        await database.init_db()
    yield
    if owned:
        await database.close_db()


app = FastAPI(title="matchfeed", lifespan=lifespan)


class LikePayload(BaseModel):
    liker_id: str
    liked_id: str


def _store():
    store = database.get_backend()
    if store is None:
        raise HTTPException(status_code=503, detail="database not initialised")
    return store


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.get("/candidates/{viewer_id}")
async def candidates(viewer_id: str) -> List[Dict[str, Any]]:
    try:
        found = await find_candidates(_store(), viewer_id)
    except CandidateSearchError as e:
        log.error("candidate search failed: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    return [c.to_dict() for c in found]


@app.post("/likes")
async def like(payload: LikePayload):
    try:
        outcome = await LikeReconciler(_store()).record_like(payload.liker_id, payload.liked_id)
    except InvalidLikeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LikeWriteError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ReconcileError as e:
        return JSONResponse(status_code=409, content={"detail": str(e), "retry_reconcile": True})
    return outcome.to_dict()


@app.post("/likes/reconcile")
async def reconcile(payload: LikePayload):
    try:
        outcome = await LikeReconciler(_store()).reconcile(payload.liker_id, payload.liked_id)
    except ReconcileError as e:
        return JSONResponse(status_code=409, content={"detail": str(e), "retry_reconcile": True})
    return outcome.to_dict()


async def _summaries(method: str, viewer_id: str):
    try:
        rows = await getattr(LikeReconciler(_store()), method)(viewer_id)
    except LikesLookupError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return [r.to_dict() for r in rows]


@app.get("/likes/incoming/{viewer_id}")
async def incoming_likes(viewer_id: str):
    return await _summaries("list_incoming_likes", viewer_id)


@app.get("/likes/outgoing/{viewer_id}")
async def outgoing_likes(viewer_id: str):
    return await _summaries("list_outgoing_likes", viewer_id)


@app.get("/matches/{viewer_id}")
async def matches(viewer_id: str):
    return await _summaries("list_mutual_matches", viewer_id)


async def start_api_server(host: str = config.API_HOST, port: int = config.API_PORT):
    server_config = uvicorn.Config(app, host=host, port=port, loop="asyncio", log_level="info")
    server = uvicorn.Server(server_config)
    await server.serve()


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    asyncio.run(start_api_server())


if __name__ == "__main__":
    main()
