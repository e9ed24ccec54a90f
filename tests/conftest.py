from __future__ import annotations

import datetime
import hashlib
import io
import threading

import pytest
import requests
from botocore.exceptions import ClientError

from r2fm.config import Settings
from r2fm.server import ManagerServer
from r2fm.storage import BucketStorage

PASSWORD = "correct horse battery staple"
SIGNING_SECRET = "test-signing-secret-0123456789"
BUCKET = "test-bucket"


class FakeS3Client:
    """In-memory stand-in for the handful of S3 client calls the manager makes."""

    def __init__(self):
        self.objects = {}
        self.error_code = None

    def _maybe_fail(self, operation):
        if self.error_code:
            raise ClientError({"Error": {"Code": self.error_code, "Message": "boom"}}, operation)

    def put_object(self, Bucket, Key, Body, ContentType="binary/octet-stream"):
        self._maybe_fail("PutObject")
        self.objects[Key] = {
            "Body": bytes(Body),
            "ContentType": ContentType,
            "LastModified": datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc),
        }
        return {}

    def delete_object(self, Bucket, Key):
        self._maybe_fail("DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def list_objects_v2(self, Bucket, Prefix="", Delimiter=None, ContinuationToken=None):
        self._maybe_fail("ListObjectsV2")
        contents = []
        prefixes = []
        for key in sorted(self.objects):
            if not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest.split(Delimiter, 1)[0] + Delimiter
                if common not in prefixes:
                    prefixes.append(common)
                continue
            obj = self.objects[key]
            contents.append({"Key": key, "Size": len(obj["Body"]), "LastModified": obj["LastModified"]})
        resp = {"IsTruncated": False, "KeyCount": len(contents)}
        if contents:
            resp["Contents"] = contents
        if prefixes:
            resp["CommonPrefixes"] = [{"Prefix": p} for p in prefixes]
        return resp

    def get_object(self, Bucket, Key):
        self._maybe_fail("GetObject")
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "not found"}}, "GetObject")
        obj = self.objects[Key]
        return {
            "Body": io.BytesIO(obj["Body"]),
            "ContentType": obj["ContentType"],
            "ContentLength": len(obj["Body"]),
            "ETag": '"' + hashlib.md5(obj["Body"]).hexdigest() + '"',
        }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        password=PASSWORD,
        signing_secret=SIGNING_SECRET,
        bucket=BUCKET,
        max_upload_bytes=64 * 1024,
    )


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def base_url(settings, fake_s3):
    httpd = ManagerServer(("127.0.0.1", 0), settings, BucketStorage(fake_s3, settings.bucket))
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    host, port = httpd.server_address[:2]
    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


@pytest.fixture
def auth_headers(base_url) -> dict:
    """Log in and return headers carrying only the issued session cookie."""
    resp = requests.post(f"{base_url}/api/login", json={"password": PASSWORD}, timeout=5)
    assert resp.status_code == 200
    cookie = resp.headers["Set-Cookie"].split(";", 1)[0]
    return {"Cookie": cookie}
