"""Memory photos in S3-compatible storage (MinIO locally). boto3 calls run in a worker thread."""

import asyncio
import io
import logging
import re
import uuid

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from washedup.config import settings

logger = logging.getLogger(__name__)

MEMORIES_PREFIX = "memories"
_MEMORY_PATH_RE = re.compile(r"/memories/(.+)$")


class StorageError(Exception):
    """Upload or removal against object storage failed."""


def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
        config=Config(signature_version="s3v4"),
    )


def public_url(path: str) -> str:
    return f"{settings.s3_public_base_url.rstrip('/')}/{settings.s3_bucket}/{MEMORIES_PREFIX}/{path}"


def memory_path_from_src(src: str) -> str | None:
    """Object path under the memories prefix, recovered from a public URL."""
    match = _MEMORY_PATH_RE.search(src)
    return match.group(1) if match else None


async def ensure_bucket_exists() -> None:
    client = get_s3_client()

    def _create_if_missing() -> None:
        try:
            client.head_bucket(Bucket=settings.s3_bucket)
        except ClientError:
            client.create_bucket(Bucket=settings.s3_bucket)

    await asyncio.to_thread(_create_if_missing)


async def upload_memory_image(image_bytes: bytes, content_type: str, filename: str | None) -> str:
    """Upload a memory photo and return its path (``<uuid>.<ext>``) under the memories prefix."""
    ext = (filename or "").rsplit(".", 1)[-1].lower() if filename and "." in filename else "jpg"
    path = f"{uuid.uuid4()}.{ext}"
    client = get_s3_client()

    def _upload() -> None:
        client.upload_fileobj(
            io.BytesIO(image_bytes),
            settings.s3_bucket,
            f"{MEMORIES_PREFIX}/{path}",
            ExtraArgs={"ContentType": content_type},
        )

    try:
        await ensure_bucket_exists()
        await asyncio.to_thread(_upload)
    except (BotoCoreError, ClientError) as e:
        raise StorageError(f"Upload of {path} failed: {e}") from e
    return path


async def delete_memory_image(path: str) -> None:
    client = get_s3_client()

    def _delete() -> None:
        client.delete_object(Bucket=settings.s3_bucket, Key=f"{MEMORIES_PREFIX}/{path}")

    try:
        await asyncio.to_thread(_delete)
    except (BotoCoreError, ClientError) as e:
        raise StorageError(f"Removal of {path} failed: {e}") from e
