"""Storage backends for uploaded recipe images."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import storage
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import StoreError


ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def allowed_image(filename: Optional[str]) -> bool:
    if not filename or "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[1].lower()
    return ext in ALLOWED_IMAGE_EXTENSIONS


def build_image_name(filename: str) -> str:
    safe = secure_filename(filename)
    unique = uuid.uuid4().hex
    return f"{unique}_{safe}"


class GcsImageStorage:
    """Upload images to a Cloud Storage bucket.

    The bucket is expected to be publicly readable; the stored URL is the
    object's public URL so it stays valid for as long as the recipe exists.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        project: Optional[str] = None,
        client: Optional[storage.Client] = None,
        prefix: str = "recipes",
    ) -> None:
        self._client = client or storage.Client(project=project)
        self._bucket = self._client.bucket(bucket_name)
        self._prefix = prefix.strip("/")

    def upload(self, image: FileStorage) -> str:
        blob = self._bucket.blob(f"{self._prefix}/{build_image_name(image.filename)}")

        image.stream.seek(0)
        try:
            blob.upload_from_file(image.stream, content_type=image.mimetype)
        except gcloud_exceptions.GoogleAPICallError as exc:
            raise StoreError("Failed to upload image.") from exc

        return blob.public_url


class LocalImageStorage:
    """Write images to a local directory served under ``base_url``."""

    def __init__(self, directory: Path | str, *, base_url: str = "/uploads") -> None:
        self._directory = Path(directory)
        self._base_url = base_url.rstrip("/")

    @property
    def directory(self) -> Path:
        return self._directory

    def upload(self, image: FileStorage) -> str:
        name = build_image_name(image.filename)

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            image.save(self._directory / name)
        except OSError as exc:
            raise StoreError("Failed to store image.") from exc

        return f"{self._base_url}/{name}"


__all__ = [
    "ALLOWED_IMAGE_EXTENSIONS",
    "GcsImageStorage",
    "LocalImageStorage",
    "allowed_image",
    "build_image_name",
]
