from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from sames.auth.gate import AuthGate
from sames.config import Settings
from sames.data.blob_store import MAX_PFP_BYTES, BlobStore
from sames.data.sqlite_store import SQLiteStore
from sames.errors import InvalidRequestError, SamesError, StorageError
from sames.models.schemas import (
    ChatMessage,
    ChatMessageIn,
    PriceSnapshot,
    Profile,
    ProfilesBatchIn,
    ProfileUpdate,
    SignedRequest,
    SnapshotIn,
    Trade,
    TradeIn,
)

logger = logging.getLogger(__name__)


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SQLiteStore] = None,
    blobs: Optional[BlobStore] = None,
    gate: Optional[AuthGate] = None,
) -> FastAPI:
    """Build the API with explicit collaborators; anything omitted comes from ``settings``."""
    settings = settings or Settings.from_env()
    store = store or SQLiteStore(settings.db_path)
    blobs = blobs or BlobStore(settings.upload_dir)
    gate = gate or AuthGate(enabled=settings.auth_enabled)

    app = FastAPI(title="sames-api")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.mount(blobs.url_prefix, StaticFiles(directory=str(blobs.root)), name="uploads")

    @app.exception_handler(SamesError)
    async def _sames_error(_request: Request, exc: SamesError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _describe_validation(exc)})

    router = APIRouter(prefix="/api")

    # ── Trades ──

    @router.post("/trade/{token_address}")
    def record_trade(token_address: str, body: TradeIn, request: Request) -> Dict[str, Any]:
        gate.authorize(SignedRequest.from_headers(body.wallet, request.headers))
        inserted = store.record_trade(token_address, body)
        return {"ok": True, "duplicate": not inserted}

    @router.get("/trades/{token_address}", response_model=List[Trade])
    def list_trades(token_address: str, limit: Optional[str] = None) -> List[Trade]:
        return store.list_trades(token_address, _parse_int(limit))

    # ── Prices ──

    @router.post("/snapshot/{token_address}")
    def record_snapshot(token_address: str, body: SnapshotIn, request: Request) -> Dict[str, Any]:
        gate.authorize(SignedRequest.from_headers(body.wallet, request.headers))
        store.record_snapshot(token_address, body)
        return {"ok": True}

    @router.get("/prices/{token_address}", response_model=List[PriceSnapshot])
    def list_prices(token_address: str, limit: Optional[str] = None) -> List[PriceSnapshot]:
        return store.list_snapshots(token_address, _parse_int(limit))

    # ── Profiles ──

    @router.get("/profile/{wallet}")
    def get_profile(wallet: str) -> Dict[str, Any]:
        profile = store.get_profile(wallet)
        if profile is None:
            return {"wallet": wallet, "username": None, "pfp_url": None}
        return profile.model_dump(mode="json")

    @router.post("/profiles/batch", response_model=List[Profile])
    def get_profiles_batch(body: ProfilesBatchIn) -> List[Profile]:
        return store.get_profiles_batch(body.wallets)

    @router.post("/profile/{wallet}")
    def update_profile(wallet: str, body: ProfileUpdate, request: Request) -> Dict[str, Any]:
        gate.authorize(SignedRequest.from_headers(wallet, request.headers))
        store.upsert_profile(wallet, body)
        return {"ok": True}

    @router.post("/profile/{wallet}/pfp")
    def upload_pfp(wallet: str, request: Request, pfp: Optional[UploadFile] = File(None)) -> Dict[str, Any]:
        gate.authorize(SignedRequest.from_headers(wallet, request.headers))
        if pfp is None:
            raise InvalidRequestError("No file")
        data = pfp.file.read(MAX_PFP_BYTES + 1)
        pfp_url = blobs.save_pfp(wallet, pfp.filename, pfp.content_type, data)
        store.set_pfp_url(wallet, pfp_url)
        return {"ok": True, "pfp_url": pfp_url}

    # ── Chat ──

    @router.get("/chat/{token_address}", response_model=List[ChatMessage])
    def list_chat(token_address: str, limit: Optional[str] = None, before: Optional[str] = None) -> List[ChatMessage]:
        return store.list_chat(token_address, _parse_int(limit), _parse_int(before))

    @router.post("/chat/{token_address}", response_model=ChatMessage)
    def post_chat(token_address: str, body: ChatMessageIn, request: Request) -> ChatMessage:
        gate.authorize(SignedRequest.from_headers(body.wallet, request.headers))
        return store.post_chat(token_address, body.wallet, body.message)

    # ── Health ──

    @router.get("/health")
    def health() -> Any:
        try:
            counts = store.counts()
        except StorageError as exc:
            return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})
        return {
            "ok": True,
            "db": "sqlite",
            "profiles": counts["profiles"],
            "messages": counts["chat_messages"],
            "trades": counts["trades"],
            "snapshots": counts["price_snapshots"],
        }

    app.include_router(router)
    logger.info(
        "SAMES API configured (db=%s, uploads=%s, auth=%s)",
        settings.db_path,
        blobs.root,
        "enabled" if gate.enabled else "disabled",
    )
    return app
