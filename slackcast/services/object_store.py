"""S3-compatible object store for rendered visualizations."""

from __future__ import annotations

import logging
import re
import time

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from slackcast import metrics
from slackcast.config import settings
from slackcast.errors import DependencyError

logger = logging.getLogger(__name__)

KEY_PREFIX = "slack-images"


def object_key(name_hint: str, message_id: str | None, channel_id: str | None, now_ms: int) -> str:
    message_part = f"msg-{message_id}" if message_id else "msg-unknown"
    channel_part = f"ch-{channel_id}" if channel_id else "ch-unknown"
    filename = re.sub(r"\s+", "_", name_hint or "table.png")
    return f"{KEY_PREFIX}/{now_ms}_{message_part}_{channel_part}_{filename}"


class ObjectStore:
    def __init__(
        self,
        bucket: str | None = None,
        *,
        client=None,
        public_base_url: str | None = None,
    ) -> None:
        self.bucket = bucket or settings.OBJECT_STORE_BUCKET
        self.public_base_url = (public_base_url or settings.OBJECT_STORE_PUBLIC_BASE_URL).rstrip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            kwargs = {
                "service_name": "s3",
                "region_name": settings.OBJECT_STORE_REGION,
                "config": Config(signature_version="s3v4"),
            }
            if settings.OBJECT_STORE_ENDPOINT_URL:
                kwargs["endpoint_url"] = settings.OBJECT_STORE_ENDPOINT_URL
            self._client = boto3.client(**kwargs)
        return self._client

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{settings.OBJECT_STORE_REGION}.amazonaws.com/{key}"

    def upload_image(
        self,
        data: bytes,
        name_hint: str = "table.png",
        message_id: str | None = None,
        channel_id: str | None = None,
    ) -> str:
        """Upload PNG bytes and return their public URL."""
        key = object_key(name_hint, message_id, channel_id, int(time.time() * 1000))
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType="image/png",
                CacheControl="public, max-age=86400",
            )
        except (BotoCoreError, ClientError) as exc:
            metrics.dependency_failures.labels("object_store").inc()
            raise DependencyError("object_store", f"Upload of {key} failed: {exc}") from exc
        url = self.public_url(key)
        logger.info("Uploaded %d bytes to %s", len(data), url)
        return url
