import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, status

from . import config

logger = logging.getLogger(__name__)


def public_image_url(url: str) -> str:
    """Serve stored images through the CDN host when one is configured."""
    if not url or not config.IMAGE_STORAGE_HOST or not config.IMAGE_CDN_HOST:
        return url or ""
    return url.replace(config.IMAGE_STORAGE_HOST, config.IMAGE_CDN_HOST, 1)


def _s3_client():
    return boto3.client("s3", region_name=config.AWS_REGION)


def presign_image_upload(filename: str) -> str:
    """Short-lived URL the admin panel PUTs a (resized, png) image to."""
    if not config.UPLOAD_BUCKET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Image uploads are not configured. Set UPLOAD_BUCKET.",
        )
    try:
        return _s3_client().generate_presigned_url(
            "put_object",
            Params={"Bucket": config.UPLOAD_BUCKET, "Key": filename, "ContentType": "image/png"},
            ExpiresIn=config.UPLOAD_URL_TTL_SECONDS,
        )
    except (BotoCoreError, ClientError) as e:
        logger.exception("presigning upload for %s failed", filename)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Storage is unavailable: {str(e)}",
        )
