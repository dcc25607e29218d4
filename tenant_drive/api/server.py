"""FastAPI adapter exposing the tenant drive to HTTP clients."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import BinaryIO, Iterator, List, Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from ..config import TenantDriveConfig
from ..errors import TenantDriveError
from ..models import FileInfo, ShareLink, SpaceInfo
from ..runtime import TenantDriveRuntime
from ..telemetry import configure_logging

_config = TenantDriveConfig.from_env()
configure_logging(_config.observability.log_level)
runtime = TenantDriveRuntime.bootstrap(_config)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "invalid_path": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "io_failure": 500,
}

_JWT_ALGORITHMS = {"HS256": hashlib.sha256, "HS384": hashlib.sha384, "HS512": hashlib.sha512}


@asynccontextmanager
async def _lifespan(app: FastAPI):
    active = runtime
    active.start()
    try:
        yield
    finally:
        active.shutdown()


app = FastAPI(title="Tenant Drive API", version="0.1.0", lifespan=_lifespan)


@app.exception_handler(TenantDriveError)
async def _handle_core_error(request: Request, exc: TenantDriveError) -> JSONResponse:
    status = ERROR_STATUS.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "kind": exc.kind})


@app.middleware("http")
async def _limit_upload_size(request: Request, call_next):
    """Refuse oversized uploads from the declared length, before the form is read."""
    if request.method == "POST" and request.url.path == "/api/upload":
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > runtime.config.storage.max_upload_bytes:
            return JSONResponse(status_code=413, content={"detail": "File too large"})
    return await call_next(request)


# Added last so CORS headers also wrap the early 413 response.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_config.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", _config.auth.share_token_header],
)


# Authentication -----------------------------------------------------------


def get_owner_id(request: Request) -> Optional[str]:
    """Return the verified caller identity, or ``None`` when there is none."""
    auth = runtime.config.auth
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        if not auth.shared_secret:
            raise HTTPException(status_code=401, detail="Bearer tokens are not accepted")
        token = auth_header.split(" ", 1)[1].strip()
        try:
            payload = _decode_jwt(token, auth.shared_secret, auth.allowed_algorithms)
        except ValueError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        owner_id = payload.get("uid") or payload.get("sub")
        if not isinstance(owner_id, str) or not owner_id:
            raise HTTPException(status_code=401, detail="Invalid user")
        return owner_id
    if auth.trust_identity_headers:
        return request.headers.get("x-user-id") or None
    return None


def get_share_token(request: Request) -> Optional[str]:
    header = runtime.config.auth.share_token_header
    return request.query_params.get("share") or request.headers.get(header) or None


def _decode_jwt(token: str, secret: str, allowed_algorithms: List[str]) -> dict:
    try:
        header_b64, payload_b64, signature_b64 = token.split(".")
    except ValueError as exc:
        raise ValueError("Malformed JWT") from exc
    header = _b64url_to_json(header_b64)
    algorithm = header.get("alg")
    if algorithm not in allowed_algorithms or algorithm not in _JWT_ALGORITHMS:
        raise ValueError("Unsupported JWT alg")
    signing_input = f"{header_b64}.{payload_b64}".encode()
    expected = hmac.new(secret.encode(), signing_input, _JWT_ALGORITHMS[algorithm]).digest()
    actual = _b64url_decode(signature_b64)
    if not hmac.compare_digest(expected, actual):
        raise ValueError("Invalid JWT signature")
    payload = _b64url_to_json(payload_b64)
    exp = payload.get("exp")
    if exp is not None:
        try:
            expires_at = float(exp)
        except (TypeError, ValueError) as exc:
            raise ValueError("Malformed exp claim") from exc
        if time.time() >= expires_at:
            raise ValueError("Token expired")
    return payload


def _b64url_to_json(segment: str) -> dict:
    try:
        data = json.loads(_b64url_decode(segment).decode())
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("Malformed JWT") from exc
    if not isinstance(data, dict):
        raise ValueError("Malformed JWT")
    return data


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    try:
        return base64.urlsafe_b64decode(segment + padding)
    except ValueError as exc:
        raise ValueError("Malformed JWT") from exc


# Request bodies -----------------------------------------------------------


class MkdirRequest(BaseModel):
    path: str = Field(default="/")
    name: str


class ShareCreateRequest(BaseModel):
    path: str = Field(default="/")
    permission: str = Field(default="read")
    ttl_hours: float = Field(default=0)


# Storage routes -----------------------------------------------------------


@app.get("/api/files")
def list_files(
    path: str = "/",
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    entries = runtime.storage_service.list_directory(owner_id, path or "/", share)
    return {"path": path or "/", "files": [_serialize_file(entry) for entry in entries]}


@app.post("/api/upload")
def upload_files(
    path: str = "/",
    file: List[UploadFile] = File(...),
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    if not file:
        raise HTTPException(status_code=400, detail="No files")
    result = runtime.storage_service.upload(
        owner_id,
        path or "/",
        [(upload.filename or "", upload.file) for upload in file],
        share,
    )
    return {
        "message": f"Uploaded {result.count} files",
        "uploaded": [
            {
                "name": item.stored_name,
                "originalName": item.original_name,
                "path": item.path,
                "size": item.size_bytes,
            }
            for item in result.uploaded
        ],
        "skipped": result.skipped,
    }


@app.get("/api/download/{path:path}")
def download_file(
    path: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    target = runtime.storage_service.download(owner_id, path, share)
    headers = {
        "Content-Disposition": _content_disposition(target.name),
        "Content-Length": str(target.size_bytes),
    }
    chunk_size = runtime.config.storage.copy_chunk_bytes
    handle = runtime.storage_service.open_download(target)
    return StreamingResponse(
        _iter_file(handle, chunk_size),
        media_type="application/octet-stream",
        headers=headers,
    )


@app.delete("/api/delete/{path:path}")
def delete_path(
    path: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    runtime.storage_service.delete(owner_id, path, share)
    return {"message": "Deleted successfully"}


@app.post("/api/mkdir", status_code=201)
def make_directory(
    payload: MkdirRequest,
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    created = runtime.storage_service.mkdir(owner_id, payload.path, payload.name, share)
    return {"message": "Directory created", "path": created}


@app.get("/api/space")
def get_space(
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    return _serialize_space(runtime.storage_service.space(owner_id, share))


# Share link routes --------------------------------------------------------


@app.post("/api/shares", status_code=201)
def create_share(
    payload: ShareCreateRequest,
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    link = runtime.sharing_service.create_share(
        owner_id,
        payload.path,
        payload.permission,
        payload.ttl_hours,
        share,
    )
    return _serialize_share(link, include_token=True)


@app.get("/api/shares")
def list_shares(
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    links = runtime.sharing_service.list_shares(owner_id, share)
    return [_serialize_share(link, include_token=True) for link in links]


@app.get("/api/shares/inspect")
def inspect_share(share: Optional[str] = Depends(get_share_token)):
    link = runtime.sharing_service.describe_share(share)
    return _serialize_share(link, include_token=False)


@app.delete("/api/shares/{share_id}")
def revoke_share(
    share_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    share: Optional[str] = Depends(get_share_token),
):
    runtime.sharing_service.revoke_share(owner_id, share_id, share)
    return {"status": "revoked", "id": share_id}


# Serialization helpers ----------------------------------------------------


def _iter_file(handle: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    try:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()


def _content_disposition(name: str) -> str:
    """Attachment header with an ASCII ``filename`` and a UTF-8 ``filename*``."""
    fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_")
    fallback = fallback.replace("\\", "\\\\").replace('"', '\\"') or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


def _serialize_file(entry: FileInfo) -> dict:
    return {
        "name": entry.name,
        "path": entry.path,
        "size": entry.size,
        "isDir": entry.is_dir,
        "modified": entry.modified.isoformat(),
    }


def _serialize_space(info: SpaceInfo) -> dict:
    return {
        "used": info.used,
        "max": info.max,
        "usedGB": info.used_gb,
        "maxGB": info.max_gb,
        "percent": info.percent,
    }


def _serialize_share(link: ShareLink, *, include_token: bool) -> dict:
    payload = {
        "id": link.id,
        "path": link.path,
        "permission": link.permission,
        "createdAt": link.created_at.isoformat(),
        "expiresAt": link.expires_at.isoformat(),
    }
    if include_token:
        payload["ownerUid"] = link.owner_id
        payload["token"] = link.token
    return payload
