"""
Blob storage for uploaded proof images.

Two backends, chosen by STORAGE_BACKEND:
    - "local" (default): files under UPLOADS_DIR, reference is the file path
    - "s3": lazily-initialized boto3 client, reference is the public object URL

Callers treat the returned reference as opaque.
"""

import logging
import os
import time
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Lazy-initialized S3 client
_s3_client = None


def _get_config():
    """Read storage configuration from environment at call time (not import time)."""
    return {
        "backend": os.getenv("STORAGE_BACKEND", "local").lower(),
        "uploads_dir": os.getenv("UPLOADS_DIR", "./uploads"),
        "access_key_id": os.getenv("AWS_ACCESS_KEY_ID"),
        "secret_access_key": os.getenv("AWS_SECRET_ACCESS_KEY"),
        "bucket": os.getenv("AWS_S3_BUCKET"),
        "region": os.getenv("AWS_S3_REGION", "us-west-2"),
    }


def _get_s3_client():
    """Get or create the boto3 S3 client. Lazy-imports boto3 to avoid import-time dependency."""
    global _s3_client
    if _s3_client is None:
        cfg = _get_config()
        if not all([cfg["access_key_id"], cfg["secret_access_key"], cfg["bucket"]]):
            raise ValueError(
                "AWS S3 environment variables not configured. "
                "Set AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, and AWS_S3_BUCKET."
            )
        import boto3

        _s3_client = boto3.client(
            "s3",
            aws_access_key_id=cfg["access_key_id"],
            aws_secret_access_key=cfg["secret_access_key"],
            region_name=cfg["region"],
        )
    return _s3_client


def build_proof_key(cell_id: int, extension: str) -> str:
    """Build a unique object key: proofs/{cell_id}/{timestamp}-{uuid}{ext}."""
    extension = extension.lower() if extension.startswith(".") else f".{extension.lower()}"
    return f"proofs/{cell_id}/{int(time.time())}-{uuid.uuid4().hex}{extension}"


def store_proof_file(
    file_bytes: bytes, cell_id: int, extension: str, content_type: str
) -> str:
    """
    Store proof bytes and return a stable reference to them.

    Args:
        file_bytes: Raw uploaded content
        cell_id: Cell the proof belongs to (used to organize keys)
        extension: File extension including the dot, e.g. ".jpg"
        content_type: MIME type recorded with the object

    Returns:
        File path (local backend) or public URL (s3 backend)
    """
    cfg = _get_config()
    key = build_proof_key(cell_id, extension)

    if cfg["backend"] == "s3":
        client = _get_s3_client()
        bucket = cfg["bucket"]
        client.put_object(
            Bucket=bucket,
            Key=key,
            Body=file_bytes,
            ContentType=content_type,
        )
        url = f"https://{bucket}.s3.{cfg['region']}.amazonaws.com/{key}"
        logger.info("Uploaded proof to S3: %s", key)
        return url

    if cfg["backend"] != "local":
        raise ValueError(f"Unknown STORAGE_BACKEND '{cfg['backend']}'")

    path = Path(cfg["uploads_dir"]) / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(file_bytes)
    logger.info("Stored proof on disk: %s", path)
    return str(path)


def _extract_key_from_url(url: str, expected_bucket: Optional[str] = None) -> Optional[str]:
    """
    Extract the S3 object key from a public S3 URL.

    Returns None if the hostname does not belong to expected_bucket or the path is empty.
    """
    try:
        parsed = urlparse(url)
        if expected_bucket and parsed.hostname and not parsed.hostname.startswith(
            f"{expected_bucket}."
        ):
            return None
        key = parsed.path.lstrip("/")
        return key or None
    except Exception:
        return None


def delete_file(reference: str) -> bool:
    """
    Delete a stored file by its reference. Best-effort: logs errors but doesn't raise.

    Returns:
        True if deleted successfully, False otherwise
    """
    cfg = _get_config()
    try:
        if reference.startswith("https://"):
            bucket = cfg["bucket"]
            key = _extract_key_from_url(reference, bucket)
            if not key:
                logger.warning(f"Could not extract S3 key from URL: {reference}")
                return False
            _get_s3_client().delete_object(Bucket=bucket, Key=key)
            logger.info(f"Deleted proof from S3: {key}")
            return True

        Path(reference).unlink()
        logger.info(f"Deleted proof from disk: {reference}")
        return True
    except Exception as e:
        logger.error(f"Failed to delete stored proof {reference}: {e}")
        return False
