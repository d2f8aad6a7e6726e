from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from urllib.parse import quote

import requests
from PIL import Image, UnidentifiedImageError

from stylegen.core.config import settings
from stylegen.core.errors import ImageUploadError

logger = logging.getLogger(__name__)

_FORMAT_EXT = {
    "JPEG": (".jpg", "image/jpeg"),
    "PNG": (".png", "image/png"),
    "WEBP": (".webp", "image/webp"),
    "GIF": (".gif", "image/gif"),
}


class ImageStore:
    def put_bytes(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        raise NotImplementedError


@dataclass(slots=True)
class SupabaseImageStore(ImageStore):
    base_url: str
    service_role_key: str
    bucket: str

    def put_bytes(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        encoded_path = quote(key, safe="/._-")
        base = self.base_url.rstrip("/")
        upload_url = f"{base}/storage/v1/object/{self.bucket}/{encoded_path}"
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            resp = requests.post(upload_url, headers=headers, data=data, timeout=20)
        except requests.RequestException as exc:
            raise ImageUploadError(f"Supabase upload failed: {exc}") from exc
        if resp.status_code >= 400:
            raise ImageUploadError(f"Supabase upload failed: {resp.status_code} {resp.text[:300]}")
        return f"{base}/storage/v1/object/public/{self.bucket}/{encoded_path}"


@dataclass(slots=True)
class LocalImageStore(ImageStore):
    root: str

    def put_bytes(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        path = Path(self.root) / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ImageUploadError(f"Local image write failed: {exc}") from exc
        return path.resolve().as_uri()


def get_image_store() -> ImageStore | None:
    backend = settings.image_store_backend.lower().strip()
    if backend == "local":
        return LocalImageStore(root=settings.local_storage_root)
    if backend == "supabase" and settings.supabase_url and settings.supabase_service_role_key:
        return SupabaseImageStore(
            base_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            bucket=settings.supabase_storage_bucket,
        )
    return None


def _read_capped(r: requests.Response, url: str) -> bytes:
    limit = settings.image_max_bytes
    declared = r.headers.get("Content-Length", "")
    if declared.isdigit() and int(declared) > limit:
        raise ImageUploadError(f"Image exceeds {limit} bytes: {url}")

    buf = bytearray()
    for chunk in r.iter_content(chunk_size=64 * 1024):
        buf.extend(chunk)
        if len(buf) > limit:
            raise ImageUploadError(f"Image exceeds {limit} bytes: {url}")
    return bytes(buf)


def _download_image(url: str) -> tuple[bytes, str, str]:
    try:
        with requests.get(url, timeout=settings.image_download_timeout_sec, stream=True) as r:
            r.raise_for_status()
            data = _read_capped(r, url)
    except requests.RequestException as exc:
        raise ImageUploadError(f"Failed to download image: {exc}") from exc

    try:
        with Image.open(BytesIO(data)) as img:
            fmt = (img.format or "").upper()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageUploadError(f"Downloaded payload is not a usable image: {url}") from exc

    ext, content_type = _FORMAT_EXT.get(fmt, (".jpg", "image/jpeg"))
    return data, ext, content_type


def rehost_image(image_url: str | None, folder: str, store: ImageStore | None = None) -> str | None:
    """
    Copy a remote image into durable storage under ``folder``.
    Falls back to the original URL when storage is not configured or any step fails.
    """
    if not image_url:
        return None
    store = store if store is not None else get_image_store()
    if store is None:
        return image_url

    try:
        data, ext, content_type = _download_image(image_url)
        digest = hashlib.sha1(image_url.encode("utf-8")).hexdigest()[:20]
        return store.put_bytes(f"{folder.strip('/')}/{digest}{ext}", data, content_type=content_type)
    except ImageUploadError as exc:
        logger.warning("image_rehost_fallback url=%s error=%s", image_url, exc)
        return image_url
