from __future__ import annotations

import io
import logging
import mimetypes
import uuid
from functools import lru_cache

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, ImageFilter, UnidentifiedImageError

from gallery.core.config import settings
from gallery.core.errors import DeletionFailure, UploadFailure
from gallery.services.assets import StoredAsset

log = logging.getLogger(__name__)

PREVIEW_SUFFIX = ".preview.jpg"
PREVIEW_WIDTH = 20


def get_s3_client(*, endpoint_url: str | None = None):
    ep = (endpoint_url or "").strip() or None
    # For AWS S3, endpoint_url must be None.
    # For S3-compatible providers (MinIO/R2/YC), endpoint_url is required.
    return boto3.client(
        "s3",
        endpoint_url=ep or ((settings.s3_endpoint_url or "").strip() or None),
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=settings.s3_region_name,
        config=Config(
            signature_version="s3v4",
            connect_timeout=settings.s3_connect_timeout_seconds,
            read_timeout=settings.s3_read_timeout_seconds,
            retries={
                "max_attempts": settings.s3_max_attempts,
                "mode": "standard",
            },
            max_pool_connections=settings.s3_max_pool_connections,
            s3={
                "addressing_style": settings.s3_addressing_style,
            },
        ),
    )


def ensure_bucket_exists(s3, bucket: str) -> None:
    try:
        s3.head_bucket(Bucket=bucket)
        return
    except ClientError:
        env = (settings.app_env or "").strip().lower()
        # In production we should NOT auto-create buckets.
        if env in {"prod", "production"}:
            raise

    # Dev convenience: auto-create bucket.
    # AWS requires LocationConstraint for non-us-east-1.
    region = (settings.s3_region_name or "").strip() or "us-east-1"
    ep = (settings.s3_endpoint_url or "").strip()
    is_aws = not ep
    if is_aws and region != "us-east-1":
        s3.create_bucket(Bucket=bucket, CreateBucketConfiguration={"LocationConstraint": region})
    else:
        s3.create_bucket(Bucket=bucket)


def public_base_url() -> str:
    base = str(settings.s3_public_base_url or "").strip()
    if base:
        return base.rstrip("/")
    ep = str(settings.s3_endpoint_url or "").strip()
    if ep:
        return f"{ep.rstrip('/')}/{settings.s3_bucket}"
    return f"https://{settings.s3_bucket}.s3.{settings.s3_region_name}.amazonaws.com"


def derive_preview(data: bytes) -> bytes | None:
    """Tiny blurred JPEG used as a loading placeholder by the gallery.

    Returns None when the buffer cannot be decoded as an image.
    """
    try:
        with Image.open(io.BytesIO(data)) as src:
            img = src.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError):
        log.warning("derive_preview: buffer is not a decodable image (%s bytes)", len(data))
        return None

    height = max(1, round(img.height * PREVIEW_WIDTH / float(img.width or 1)))
    small = img.resize((PREVIEW_WIDTH, height)).filter(ImageFilter.GaussianBlur(radius=2))
    out = io.BytesIO()
    small.save(out, format="JPEG", quality=1)
    return out.getvalue()


class ObjectStore:
    """Stores image blobs in one bucket and removes them by object key."""

    def __init__(self, s3, *, bucket: str, base_url: str):
        self.s3 = s3
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self._bucket_ready = False

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            ensure_bucket_exists(self.s3, self.bucket)
        except (BotoCoreError, ClientError) as e:
            raise UploadFailure(e, "image storage is unavailable") from e
        self._bucket_ready = True

    def url_for(self, object_key: str) -> str:
        return f"{self.base_url}/{object_key}"

    def upload(
        self,
        data: bytes,
        folder: str,
        content_type: str | None = None,
        *,
        with_preview: bool = False,
    ) -> StoredAsset:
        ct = (content_type or "").strip() or "application/octet-stream"
        ext = mimetypes.guess_extension(ct.split(";")[0].strip()) or ""
        object_key = f"{folder.strip('/')}/{uuid.uuid4()}{ext}"

        self._ensure_bucket()
        try:
            self.s3.put_object(Bucket=self.bucket, Key=object_key, Body=data, ContentType=ct)
        except (BotoCoreError, ClientError) as e:
            raise UploadFailure(e) from e

        preview_url: str | None = None
        if with_preview:
            preview = derive_preview(data)
            if preview is not None:
                preview_key = object_key + PREVIEW_SUFFIX
                try:
                    self.s3.put_object(Bucket=self.bucket, Key=preview_key, Body=preview, ContentType="image/jpeg")
                except (BotoCoreError, ClientError) as e:
                    # Best-effort: do not leave the main object behind when the reference is not returned.
                    try:
                        self.s3.delete_object(Bucket=self.bucket, Key=object_key)
                    except (BotoCoreError, ClientError):
                        log.warning("upload: could not remove %s after preview failure", object_key)
                    raise UploadFailure(e) from e
                preview_url = self.url_for(preview_key)

        log.info("upload: stored %s (%s bytes, preview=%s)", object_key, len(data), bool(preview_url))
        return StoredAsset(url=self.url_for(object_key), identifier=object_key, preview=preview_url)

    def delete(self, identifier: str) -> None:
        # Deleting a key that no longer exists is a no-op in S3, so retries are safe.
        keys = [{"Key": identifier}, {"Key": identifier + PREVIEW_SUFFIX}]
        try:
            resp = self.s3.delete_objects(Bucket=self.bucket, Delete={"Objects": keys, "Quiet": True})
        except (BotoCoreError, ClientError) as e:
            raise DeletionFailure(e) from e

        errors = resp.get("Errors") or []
        if errors:
            first = errors[0]
            raise DeletionFailure(f"{first.get('Key')}: {first.get('Code')} {first.get('Message')}")
        log.info("delete: removed %s", identifier)

    def ping(self) -> None:
        self.s3.head_bucket(Bucket=self.bucket)


@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    # boto3 clients are thread-safe; one per process is shared by all requests.
    return ObjectStore(get_s3_client(), bucket=settings.s3_bucket, base_url=public_base_url())
