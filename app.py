from __future__ import annotations
import os
import sys
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, APIRouter, HTTPException, Request, UploadFile, File, Form
from fastapi.responses import JSONResponse

from db import Database
from dupecheck import (
    DistanceMismatchError,
    DuplicateChecker,
    DuplicateVerdict,
    FingerprintStore,
    FrameExtractionError,
    FrameExtractor,
    HashComputationError,
    MediaKind,
    PostStore,
    Settings,
    UnsupportedMediaError,
    resolve_media_kind,
)
from dupecheck.logs import log, logger
from dupecheck.media import ext_from_filename
from dupecheck.posts import SAFETY_LEVELS

# Global server state: services are built once at startup
STATE: Dict[str, Any] = {}


def init_services(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Construct the storage handle and the services that share it."""
    settings = settings or Settings.from_env()
    database = Database(settings.db_path)
    database.ensure_schema()
    posts = PostStore(database)
    fingerprints = FingerprintStore(database, hash_size=settings.hash_size)
    extractor = FrameExtractor(settings)
    STATE.update({
        "settings": settings,
        "db": database,
        "posts": posts,
        "fingerprints": fingerprints,
        "extractor": extractor,
        "checker": DuplicateChecker(extractor, fingerprints, posts, settings),
    })
    return STATE


def api_success(data=None, message: str = "OK", status_code: int = 200):
    return JSONResponse({"status": "success", "message": message, "data": data}, status_code=status_code)


def api_error(message: str, status_code: int = 400, data=None, **extra):
    return JSONResponse({"status": "error", "message": message, "data": data, **extra}, status_code=status_code)


def raise_api_error(message: str, status_code: int = 400, data=None):
    raise HTTPException(status_code=status_code, detail={"status": "error", "message": message, "data": data})


def duplicate_response(verdict: DuplicateVerdict):
    """409 for a duplicate upload; names the original post when it could be resolved."""
    post_id = verdict.matched_post_id
    if verdict.matched_post is not None:
        message = f"This image already exists in post #{post_id}!"
    else:
        message = "This image already exists."
    return api_error(message, 409, data=verdict.to_dict(), duplicate=True, postId=post_id)


@asynccontextmanager
async def lifespan(app_obj: FastAPI):  # type: ignore[override]
    if "checker" not in STATE:
        init_services()
    log("api", "startup db=%s", STATE["db"].path)
    yield


app = FastAPI(title="Booru Duplicate Check", version="1.0", lifespan=lifespan)
api = APIRouter(prefix="/api")


@app.exception_handler(UnsupportedMediaError)
async def _unsupported_media(request: Request, exc: UnsupportedMediaError):
    return api_error(str(exc), 415)


@app.exception_handler(FrameExtractionError)
@app.exception_handler(HashComputationError)
async def _processing_failed(request: Request, exc: Exception):
    log("api", "processing failed path=%s err=%s", request.url.path, exc, level=logging.WARNING)
    return api_error("Failed to process upload.", 500)


@app.exception_handler(DistanceMismatchError)
async def _integrity_violation(request: Request, exc: DistanceMismatchError):
    logger.error("fingerprint integrity violation at %s: %s", request.url.path, exc)
    return api_error("Failed to process upload.", 500)


async def _read_upload(file: UploadFile) -> tuple[bytes, str]:
    ext = ext_from_filename(str(getattr(file, "filename", "") or ""))
    if resolve_media_kind(ext) is MediaKind.OTHER:
        raise_api_error(f"File type .{ext} is not supported.", status_code=415)
    try:
        data = await file.read()
    finally:
        await file.close()
    if not data:
        raise_api_error("No file provided", status_code=400)
    return data, ext


@api.post("/posts/check")
async def posts_check(file: UploadFile = File(..., description="Media file to check")):
    """Report whether an upload duplicates an existing post without creating anything."""
    data, ext = await _read_upload(file)
    verdict = await STATE["checker"].check_duplicate(data, ext, resolve_media_kind(ext))
    if verdict.is_duplicate:
        return duplicate_response(verdict)
    return api_success({"duplicate": False, **verdict.to_dict()})


@api.post("/posts/create")
async def posts_create(
    file: UploadFile = File(..., description="Media file for the new post"),
    anonymous: bool = Form(default=False),
    safety: str = Form(default="SAFE"),
    force: bool = Form(default=False, description="Create even when a duplicate exists"),
):
    if str(safety).upper() not in SAFETY_LEVELS:
        raise_api_error(f"invalid safety: {safety}", status_code=400)
    data, ext = await _read_upload(file)
    verdict = await STATE["checker"].check_duplicate(data, ext, resolve_media_kind(ext))
    if verdict.is_duplicate and not force:
        return duplicate_response(verdict)
    # Storage calls are blocking sqlite; keep them off the event loop
    post = await asyncio.to_thread(
        STATE["posts"].create_post, file_ext=ext, file_size=len(data), anonymous=anonymous, safety=safety,
    )
    await asyncio.to_thread(STATE["fingerprints"].upsert, post.id, verdict.fingerprint)
    log("api", "post created id=%d ext=%s forced=%s", post.id, ext, bool(verdict.is_duplicate))
    return api_success(
        {"postId": post.id, "fingerprint": verdict.fingerprint, "duplicateOf": verdict.matched_post_id},
        message="created",
        status_code=201,
    )


@api.post("/posts/replace")
async def posts_replace(
    file: UploadFile = File(..., description="New media for the post"),
    postId: int = Form(...),
):
    """Swap a post's content; its fingerprint is recomputed and overwritten."""
    posts: PostStore = STATE["posts"]
    if await asyncio.to_thread(posts.get_post, postId) is None:
        raise_api_error("Post not found", status_code=404)
    data, ext = await _read_upload(file)
    verdict = await STATE["checker"].check_duplicate(
        data, ext, resolve_media_kind(ext), exclude_post_id=postId,
    )
    if verdict.is_duplicate:
        return duplicate_response(verdict)
    post = await asyncio.to_thread(posts.update_post, postId, file_ext=ext, file_size=len(data))
    if post is None:
        # Deleted while we were hashing
        raise_api_error("Post not found", status_code=404)
    await asyncio.to_thread(STATE["fingerprints"].upsert, postId, verdict.fingerprint)
    log("api", "post content replaced id=%d ext=%s", postId, ext)
    return api_success({"postId": postId, "fingerprint": verdict.fingerprint})


@api.get("/posts/{post_id}")
def posts_get(post_id: int):
    post = STATE["posts"].get_post(post_id)
    if post is None:
        raise_api_error("Post not found", status_code=404)
    rec = STATE["fingerprints"].get(post_id)
    return api_success({**post.to_dict(), "fingerprint": rec.fingerprint if rec else None})


@api.delete("/posts/{post_id}")
def posts_delete(post_id: int):
    STATE["fingerprints"].remove(post_id)
    if not STATE["posts"].delete_post(post_id):
        raise_api_error("Post not found", status_code=404)
    log("api", "post deleted id=%d", post_id)
    return api_success({"postId": post_id}, message="deleted")


@api.get("/health")
def health():
    return api_success({
        "fingerprints": STATE["fingerprints"].count(),
        "threshold": STATE["settings"].threshold,
    })


app.include_router(api)


if __name__ == "__main__":  # pragma: no cover
    try:
        import uvicorn  # type: ignore
    except ImportError:
        sys.stderr.write("[app] Missing dependency: uvicorn. Install with: pip install uvicorn\n")
        sys.exit(1)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    host = os.environ.get("HOST", "127.0.0.1")
    try:
        port = int(os.environ.get("PORT", "9999") or 9999)
    except ValueError:
        port = 9999
    uvicorn.run("app:app", host=host, port=port)
