import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol

import httpx
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials

from .errors import NotFoundError, StorageError

LOGGER = logging.getLogger(__name__)

CONTENT_STORE_BACKEND = os.getenv("CONTENT_STORE_BACKEND", "http").lower()
CONTENT_STORE_URL = os.getenv("CONTENT_STORE_URL", "http://minio:9000")
CONTENT_STORE_BUCKET = os.getenv("CONTENT_STORE_BUCKET", "lifelogger-journals")
CONTENT_STORE_TOKEN = os.getenv("CONTENT_STORE_TOKEN", "").strip() or None
CONTENT_STORE_ACCESS_KEY = os.getenv("CONTENT_STORE_ACCESS_KEY", "").strip() or None
CONTENT_STORE_SECRET_KEY = os.getenv("CONTENT_STORE_SECRET_KEY", "").strip() or None
CONTENT_STORE_REGION = os.getenv("CONTENT_STORE_REGION", "us-east-1")
CONTENT_STORE_TIMEOUT = float(os.getenv("CONTENT_STORE_TIMEOUT", "30"))
CONTENT_STORE_DIR = os.getenv("CONTENT_STORE_DIR", "/var/lib/ll-journal/blobs")
CONTENT_TYPE = "text/markdown"

_content_store: "ContentStore | None" = None
_http_client: httpx.AsyncClient | None = None


class ContentStore(Protocol):
    async def put(self, key: str, content: bytes) -> None: ...

    async def get(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...


class SigV4Auth(httpx.Auth):
    """Signs each request with AWS Signature Version 4 for S3-style endpoints."""

    requires_request_body = True
    _SIGNED_HEADERS = ("Authorization", "X-Amz-Date", "X-Amz-Content-SHA256")

    def __init__(self, access_key: str, secret_key: str, region: str):
        self._credentials = Credentials(access_key, secret_key)
        self._region = region

    def auth_flow(self, request: httpx.Request):
        headers = {}
        if "Content-Type" in request.headers:
            headers["Content-Type"] = request.headers["Content-Type"]
        signed = AWSRequest(
            method=request.method,
            url=str(request.url),
            data=request.content,
            headers=headers,
        )
        S3SigV4Auth(self._credentials, "s3", self._region).add_auth(signed)
        for name in self._SIGNED_HEADERS:
            if name in signed.headers:
                request.headers[name] = signed.headers[name]
        yield request


class HttpContentStore:
    """Blob storage on a path-style object endpoint (``/{bucket}/{key}``)."""

    def __init__(self, client: httpx.AsyncClient, bucket: str):
        self._client = client
        self._bucket = bucket

    def _path(self, key: str) -> str:
        return f"/{self._bucket}/{key}"

    async def _send(self, method: str, key: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, self._path(key), **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError(f"{method} {key} failed: {exc}") from exc

    async def put(self, key: str, content: bytes) -> None:
        response = await self._send(
            "PUT", key, content=content, headers={"Content-Type": CONTENT_TYPE}
        )
        if response.status_code >= 400:
            raise StorageError(
                f"Blob upload failed ({response.status_code}): {response.text}"
            )

    async def get(self, key: str) -> bytes:
        response = await self._send("GET", key)
        if response.status_code == 404:
            raise NotFoundError(f"blob {key} not found")
        if response.status_code >= 400:
            raise StorageError(
                f"Blob download failed ({response.status_code}): {response.text}"
            )
        return response.content

    async def delete(self, key: str) -> None:
        response = await self._send("DELETE", key)
        if response.status_code not in (200, 204, 404):
            raise StorageError(
                f"Blob delete failed ({response.status_code}): {response.text}"
            )

    async def exists(self, key: str) -> bool:
        response = await self._send("HEAD", key)
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise StorageError(f"Blob lookup failed ({response.status_code})")
        return True


class LocalContentStore:
    """Blob storage in a directory tree, one file per key."""

    def __init__(self, root: str | Path):
        self._root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise StorageError(f"blob key escapes the store root: {key}")
        return path

    def _write(self, key: str, content: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(content)
        tmp.replace(path)

    async def put(self, key: str, content: bytes) -> None:
        try:
            await asyncio.to_thread(self._write, key, content)
        except OSError as exc:
            raise StorageError(f"failed to write blob {key}: {exc}") from exc

    async def get(self, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._path(key).read_bytes)
        except FileNotFoundError as exc:
            raise NotFoundError(f"blob {key} not found") from exc
        except OSError as exc:
            raise StorageError(f"failed to read blob {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._path(key).unlink, True)
        except OSError as exc:
            raise StorageError(f"failed to delete blob {key}: {exc}") from exc

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)


def _content_store_auth() -> httpx.Auth | None:
    if CONTENT_STORE_ACCESS_KEY and CONTENT_STORE_SECRET_KEY:
        return SigV4Auth(CONTENT_STORE_ACCESS_KEY, CONTENT_STORE_SECRET_KEY, CONTENT_STORE_REGION)
    return None


def _content_store_headers() -> dict[str, str]:
    if CONTENT_STORE_TOKEN:
        return {"Authorization": f"Bearer {CONTENT_STORE_TOKEN}"}
    return {}


async def startup_content_store() -> None:
    global _content_store, _http_client
    if _content_store is not None:
        return
    if CONTENT_STORE_BACKEND == "local":
        _content_store = LocalContentStore(CONTENT_STORE_DIR)
    else:
        _http_client = httpx.AsyncClient(
            base_url=CONTENT_STORE_URL,
            headers=_content_store_headers(),
            auth=_content_store_auth(),
            timeout=httpx.Timeout(CONTENT_STORE_TIMEOUT),
        )
        _content_store = HttpContentStore(_http_client, CONTENT_STORE_BUCKET)
    LOGGER.info("Content store ready backend=%s", CONTENT_STORE_BACKEND)


async def shutdown_content_store() -> None:
    global _content_store, _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
    _content_store = None


def get_content_store() -> ContentStore:
    if _content_store is None:
        raise RuntimeError("Content store is not initialized")
    return _content_store
