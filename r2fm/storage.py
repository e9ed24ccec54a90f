import logging
import urllib.parse

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

PLACEHOLDER_NAME = ".r2-folder-placeholder"
PROXY_PREFIX = "/r2/"


def build_s3(settings):
    s3_config = Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"})
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url,
        region_name=settings.region,
        aws_access_key_id=settings.access_key_id,
        aws_secret_access_key=settings.secret_access_key,
        config=s3_config,
    )


def normalize_folder(folder):
    folder = (folder or "").strip("/")
    return folder + "/" if folder else ""


def object_url(key):
    return PROXY_PREFIX + urllib.parse.quote(key, safe="")


def is_placeholder(key):
    return key.rsplit("/", 1)[-1] == PLACEHOLDER_NAME


class BucketStorage:
    """Folder-style view over a flat S3-compatible bucket."""

    def __init__(self, client, bucket):
        self.client = client
        self.bucket = bucket

    def _pages(self, **args):
        token = ""
        while True:
            if token:
                args["ContinuationToken"] = token
            resp = self.client.list_objects_v2(Bucket=self.bucket, **args)
            yield resp
            if not resp.get("IsTruncated"):
                break
            token = resp.get("NextContinuationToken", "")
            if not token:
                break

    def list_folder(self, folder=""):
        prefix = normalize_folder(folder)
        folders = []
        files = []
        for resp in self._pages(Prefix=prefix, Delimiter="/"):
            for cp in resp.get("CommonPrefixes", []):
                folders.append(cp["Prefix"][len(prefix):].rstrip("/"))
            for o in resp.get("Contents", []):
                key = o["Key"]
                if key == prefix or is_placeholder(key):
                    continue
                modified = o.get("LastModified")
                files.append({
                    "key": key,
                    "name": key[len(prefix):],
                    "size": o.get("Size", 0),
                    "last_modified": modified.isoformat() if modified else None,
                    "url": object_url(key),
                })
        return {"folders": folders, "files": files}

    def put(self, key, body, content_type="application/octet-stream"):
        self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        logging.info("Upload key=%s bucket=%s size=%s", key, self.bucket, len(body))

    def make_folder(self, folder):
        folder = folder.strip("/")
        if not folder:
            raise ValueError("empty folder name")
        key = folder + "/" + PLACEHOLDER_NAME
        self.client.put_object(Bucket=self.bucket, Key=key, Body=b"")
        logging.info("Create folder key=%s bucket=%s", key, self.bucket)
        return key

    def delete(self, key):
        """Delete one object, or everything under ``key`` when it ends in a slash."""
        if not key.endswith("/"):
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logging.info("Delete object key=%s bucket=%s", key, self.bucket)
            return 1
        count = 0
        for resp in self._pages(Prefix=key):
            for obj in resp.get("Contents", []):
                self.client.delete_object(Bucket=self.bucket, Key=obj["Key"])
                count += 1
        logging.info("Delete folder prefix=%s count=%s bucket=%s", key, count, self.bucket)
        return count

    def get(self, key):
        """Return the ``get_object`` response, or None when the key does not exist."""
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404", "NotFound"):
                return None
            raise
