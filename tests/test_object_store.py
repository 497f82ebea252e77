"""Tests for the S3-compatible visualization store."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from slackcast.errors import DependencyError
from slackcast.services.object_store import ObjectStore, object_key


def test_object_key_layout():
    key = object_key("Weekly Report_table.png", "M1", "C123", 1700000000000)
    assert key == "slack-images/1700000000000_msg-M1_ch-C123_Weekly_Report_table.png"


def test_object_key_unknown_parts():
    assert object_key("", None, None, 1) == "slack-images/1_msg-unknown_ch-unknown_table.png"


def test_upload_returns_public_url():
    s3 = MagicMock()
    store = ObjectStore("bucket-a", client=s3, public_base_url="https://cdn.example/")
    url = store.upload_image(b"png", "chart.png", "M1", "C1")

    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "bucket-a"
    assert kwargs["ContentType"] == "image/png"
    assert kwargs["CacheControl"] == "public, max-age=86400"
    assert kwargs["Body"] == b"png"
    assert url == f"https://cdn.example/{kwargs['Key']}"
    assert kwargs["Key"].endswith("_msg-M1_ch-C1_chart.png")


def test_default_public_url_is_bucket_host(monkeypatch):
    from slackcast.config import settings

    monkeypatch.setattr(settings, "OBJECT_STORE_PUBLIC_BASE_URL", "")
    monkeypatch.setattr(settings, "OBJECT_STORE_REGION", "eu-west-1")
    store = ObjectStore("bucket-a", client=MagicMock())
    assert store.public_url("k.png") == "https://bucket-a.s3.eu-west-1.amazonaws.com/k.png"


def test_upload_failure_raises_dependency_error():
    s3 = MagicMock()
    s3.put_object.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
    store = ObjectStore("bucket-a", client=s3, public_base_url="https://cdn.example")
    with pytest.raises(DependencyError) as exc_info:
        store.upload_image(b"png")
    assert exc_info.value.dependency == "object_store"
