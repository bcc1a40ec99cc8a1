import io
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import cloudinary
import cloudinary.uploader

from config import Settings
from errors import UpstreamError

logger = logging.getLogger("chatbot.storage")


@dataclass
class StoredFile:
    url: str
    public_id: Optional[str] = None
    backend: str = "local"


def normalize_upload_result(raw: Dict[str, Any], backend: str) -> StoredFile:
    """Pick the public URL out of whatever field the storage service used."""
    url = None
    for key in ("secure_url", "url", "file_url", "fileUrl"):
        if raw.get(key):
            url = raw[key]
            break
    if not url:
        raise UpstreamError("Storage service returned no URL")
    return StoredFile(url=url, public_id=raw.get("public_id"), backend=backend)


def safe_filename(filename: str) -> str:
    name = os.path.basename(filename or "") or "upload"
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)


class LocalStorage:
    """Writes uploads to a directory served by the app under /files."""

    name = "local"

    def __init__(self, root: str, base_url: str):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def upload(self, data: bytes, filename: str, content_type: str = "") -> StoredFile:
        os.makedirs(self.root, exist_ok=True)
        unique_name = f"{int(time.time())}_{uuid.uuid4().hex}_{safe_filename(filename)}"
        path = os.path.join(self.root, unique_name)
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise UpstreamError(f"Storage upload failed: {e}") from e
        return normalize_upload_result(
            {"url": f"{self.base_url}/files/{unique_name}", "public_id": unique_name},
            self.name,
        )


class CloudinaryStorage:
    name = "cloudinary"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "uploads"):
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
        self.folder = folder

    def upload(self, data: bytes, filename: str, content_type: str = "") -> StoredFile:
        stream = io.BytesIO(data)
        stream.name = safe_filename(filename)
        try:
            result = cloudinary.uploader.upload(
                stream,
                resource_type="auto",
                folder=self.folder,
            )
        except Exception as e:
            raise UpstreamError(f"Cloudinary upload failed: {e}") from e
        return normalize_upload_result(result or {}, self.name)


def build_storage(settings: Settings):
    if settings.storage_backend == "cloudinary":
        if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
            raise UpstreamError("Cloudinary storage selected but CLOUDINARY_* credentials are missing")
        return CloudinaryStorage(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            settings.cloudinary_folder,
        )
    if settings.storage_backend == "local":
        return LocalStorage(settings.upload_dir, settings.public_base_url)
    raise UpstreamError(f"Unsupported storage backend: {settings.storage_backend}")
