"""
File uploads: validation, image compression and Google Drive storage.

Images are re-encoded with size-tiered width/quality settings before upload;
videos pass through unchanged. Drive access uses an OAuth2 refresh token
exchanged for short-lived access tokens. Without credentials the client runs
in mock mode and returns synthetic Drive ids.
"""
import io
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

import config

logger = logging.getLogger(__name__)

MB = 1024 * 1024

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"}
ALLOWED_VIDEO_TYPES = {"video/mp4", "video/avi", "video/mov", "video/wmv", "video/flv", "video/webm"}

PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"


class UnsupportedFileType(ValueError):
    pass


class StorageError(RuntimeError):
    pass


# ----------------------------
# Validation & compression
# ----------------------------

def file_kind(content_type: Optional[str]) -> str:
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    return "unknown"


def validate_file(content_type: Optional[str]) -> str:
    kind = file_kind(content_type)
    content_type = (content_type or "").lower()
    if kind == "unknown":
        raise UnsupportedFileType("Unsupported file type. Please select images or videos only.")
    if kind == "image" and content_type not in ALLOWED_IMAGE_TYPES:
        raise UnsupportedFileType("Unsupported image format. Please use JPEG, PNG, WebP, or GIF.")
    if kind == "video" and content_type not in ALLOWED_VIDEO_TYPES:
        raise UnsupportedFileType("Unsupported video format. Please use MP4, AVI, MOV, WMV, FLV, or WebM.")
    return kind


def compression_settings(size: int) -> Tuple[int, int]:
    """(max_width, quality) for an image of ``size`` bytes."""
    if size > 10 * MB:
        return 1600, 40
    if size > 5 * MB:
        return 1800, 50
    if size > 2 * MB:
        return 1920, 60
    if size > MB:
        return 1920, 70
    return 1920, 80


def compress_image(data: bytes, content_type: str) -> bytes:
    """Downscale to the tier's max width and re-encode; never returns a larger payload."""
    fmt = PIL_FORMATS.get(content_type.lower())
    if fmt is None:
        # gif (possibly animated) is stored as is
        return data
    max_width, quality = compression_settings(len(data))
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if img.width > max_width or img.height > max_width:
                img.thumbnail((max_width, max_width), Image.Resampling.LANCZOS)
            if fmt == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            out = io.BytesIO()
            if fmt == "PNG":
                img.save(out, format=fmt, optimize=True)
            else:
                img.save(out, format=fmt, quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedFileType(f"Could not read image: {exc}")
    compressed = out.getvalue()
    if len(compressed) >= len(data):
        return data
    return compressed


def compression_ratio(original_size: int, size: int) -> float:
    if original_size <= 0:
        return 0.0
    ratio = (1 - size / original_size) * 100
    return round(min(max(ratio, 0.0), 100.0), 2)


# ----------------------------
# Google Drive
# ----------------------------

@dataclass
class StoredFile:
    id: str
    url: str
    download_url: Optional[str] = None


class DriveClient:
    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        refresh_token: str = "",
        folder_id: str = "",
        http: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.folder_id = folder_id
        self.mock = not (client_id and client_secret and refresh_token)
        self._http = http
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    @classmethod
    def from_config(cls) -> "DriveClient":
        return cls(
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            refresh_token=config.GOOGLE_REFRESH_TOKEN,
            folder_id=config.GOOGLE_DRIVE_FOLDER_ID,
        )

    def _client(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=60.0)
        return self._http

    def access_token(self) -> str:
        if self._access_token and time.time() < self._expires_at - 60:
            return self._access_token
        try:
            response = self._client().post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"Token refresh failed: {exc}") from exc
        if response.status_code >= 400:
            logger.warning("Drive token refresh failed status=%s body=%s", response.status_code, response.text[:300])
            raise StorageError("Token refresh failed")
        payload = response.json()
        self._access_token = payload["access_token"]
        self._expires_at = time.time() + int(payload.get("expires_in", 3600))
        return self._access_token

    def upload(self, name: str, mime_type: str, data: bytes) -> StoredFile:
        if self.mock:
            file_id = f"mock_{uuid.uuid4().hex}"
            logger.info("Mock Drive upload name=%s size=%s id=%s", name, len(data), file_id)
            return StoredFile(id=file_id, url=f"https://drive.google.com/file/d/{file_id}/view")

        metadata: Dict[str, Any] = {"name": name, "mimeType": mime_type}
        if self.folder_id:
            metadata["parents"] = [self.folder_id]
        boundary = f"upload-{uuid.uuid4().hex}"
        body = b"".join([
            f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode(),
            json.dumps(metadata).encode(),
            f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode(),
            data,
            f"\r\n--{boundary}--\r\n".encode(),
        ])
        try:
            response = self._client().post(
                DRIVE_UPLOAD_URL,
                params={"uploadType": "multipart", "fields": "id,webViewLink,webContentLink"},
                headers={
                    "Authorization": f"Bearer {self.access_token()}",
                    "Content-Type": f"multipart/related; boundary={boundary}",
                },
                content=body,
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"Drive upload failed: {exc}") from exc
        if response.status_code >= 400:
            logger.warning("Drive upload failed name=%s status=%s body=%s", name, response.status_code, response.text[:300])
            raise StorageError("Drive upload failed")
        payload = response.json()
        logger.info("Uploaded %s to Drive id=%s", name, payload.get("id"))
        return StoredFile(
            id=payload["id"],
            url=payload.get("webViewLink") or f"https://drive.google.com/file/d/{payload['id']}/view",
            download_url=payload.get("webContentLink"),
        )


_drive: Optional[DriveClient] = None


def get_drive() -> DriveClient:
    global _drive
    if _drive is None:
        _drive = DriveClient.from_config()
        if _drive.mock:
            logger.warning("Google Drive credentials not set; uploads run in mock mode")
    return _drive


def store_upload(drive: DriveClient, name: str, content_type: str, data: bytes) -> Dict[str, Any]:
    """Validate, compress and upload a file; returns the file reference fields."""
    kind = validate_file(content_type)
    original_size = len(data)
    payload = compress_image(data, content_type) if kind == "image" else data
    logger.info("Storing %s (%s) %s -> %s bytes", name, content_type, original_size, len(payload))
    stored = drive.upload(name, content_type, payload)
    return {
        "name": name,
        "type": content_type,
        "size": len(payload),
        "original_size": original_size,
        "drive_id": stored.id,
        "drive_url": stored.url,
        "download_url": stored.download_url,
        "compression_ratio": compression_ratio(original_size, len(payload)),
    }
