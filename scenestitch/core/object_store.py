"""
Durable Object Storage

Rendered artifacts are published through a small interface: put bytes
under a key, get back a publicly resolvable URL.

Back ends:
- local: files under STORAGE_PATH, URLs under PUBLIC_BASE_URL (the API
  serves them from /api/artifacts)
- gcs: a Google Cloud Storage bucket
"""

import json
import logging
from pathlib import Path
from typing import Optional

from google.cloud import storage
from google.oauth2 import service_account

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_CACHE_CONTROL = "public, max-age=3600"


class ObjectStore:
    """Interface for artifact storage back ends."""

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Stores objects as plain files below a root directory."""

    def __init__(self, root: Path, public_base_url: str):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def resolve(self, key: str) -> Path:
        """
        Map a key to a path inside the root.

        Raises:
            ValueError: If the key escapes the root directory
        """
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> str:
        path = self.resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"Stored {len(data)} bytes at {path}")
        return f"{self.public_base_url}/{key}"


def _get_storage_client(credentials_json: Optional[str]) -> storage.Client:
    if not credentials_json:
        return storage.Client()

    try:
        credentials_info = json.loads(credentials_json)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid GCP_CREDENTIALS JSON") from exc

    credentials = service_account.Credentials.from_service_account_info(
        credentials_info
    )
    return storage.Client(
        credentials=credentials, project=credentials_info.get("project_id")
    )


class GCSObjectStore(ObjectStore):
    """Stores objects in a Google Cloud Storage bucket."""

    def __init__(
        self,
        bucket_name: str,
        credentials_json: Optional[str] = None,
        client: Optional[storage.Client] = None,
    ):
        self.bucket_name = bucket_name
        self._credentials_json = credentials_json
        self._client = client

    def _bucket(self) -> storage.Bucket:
        if self._client is None:
            self._client = _get_storage_client(self._credentials_json)
        return self._client.bucket(self.bucket_name)

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> str:
        blob = self._bucket().blob(key)
        blob.cache_control = cache_control
        blob.upload_from_string(data, content_type=content_type)
        logger.info(f"Uploaded {len(data)} bytes to gs://{self.bucket_name}/{key}")
        return blob.public_url


def get_object_store(settings: Optional[Settings] = None) -> ObjectStore:
    """
    Build the object store selected by STORAGE_BACKEND.

    Raises:
        ValueError: If the gcs back end is selected without GCS_BUCKET
    """
    settings = settings or get_settings()

    if settings.storage_backend == "gcs":
        if not settings.gcs_bucket:
            raise ValueError("GCS_BUCKET must be set when STORAGE_BACKEND=gcs")
        return GCSObjectStore(settings.gcs_bucket, settings.gcp_credentials)

    return LocalObjectStore(settings.storage_root, settings.public_base_url)
