"""
S3-compatible object storage for audio files.

Supabase Storage, Cloudflare R2 and MinIO all speak the S3 API, so signed
retrieval and upload URLs are presigned with boto3 against whichever endpoint
is configured.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .constants import DEFAULT_NETWORK_TIMEOUT, DEFAULT_STORAGE_BUCKET, SIGNED_URL_TTL
from .errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class SignedUpload:
    """A presigned upload target for one object path."""
    url: str
    path: str
    token: str


class ObjectStore:
    """
    Object storage client using boto3.

    Presigning happens locally with the configured credentials; only
    listing and bucket checks go over the network.
    """

    def __init__(self, bucket: str = DEFAULT_STORAGE_BUCKET,
                 endpoint_url: Optional[str] = None,
                 access_key_id: Optional[str] = None,
                 secret_access_key: Optional[str] = None,
                 region: str = "auto",
                 timeout: float = DEFAULT_NETWORK_TIMEOUT,
                 upload_ttl: int = SIGNED_URL_TTL * 2,
                 s3_client: Any = None):
        self.bucket_name = bucket
        self.endpoint_url = endpoint_url
        self.upload_ttl = upload_ttl
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=Config(
                signature_version="s3v4",
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 0},
            ),
        )

    @classmethod
    def from_config(cls, config) -> "ObjectStore":
        return cls(
            bucket=config.storage_bucket,
            endpoint_url=config.s3_endpoint,
            access_key_id=config.s3_access_key_id or None,
            secret_access_key=config.s3_secret_access_key or None,
            region=config.s3_region,
            timeout=config.network_timeout,
        )

    def create_signed_url(self, path: str, ttl_seconds: int = SIGNED_URL_TTL) -> str:
        """Generate a time-limited retrieval URL for one object."""
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("Failed to generate URL", details=str(e)) from e

    def create_signed_upload_url(self, path: str) -> SignedUpload:
        """
        Generate a presigned PUT target for one object.

        The returned token is the URL's signature, which identifies the
        grant without exposing credentials.
        """
        try:
            url = self.s3_client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket_name, "Key": path},
                ExpiresIn=self.upload_ttl,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("Failed to create upload URL", details=str(e)) from e

        query = parse_qs(urlparse(url).query)
        token = (query.get("X-Amz-Signature") or query.get("Signature") or [""])[0]
        return SignedUpload(url=url, path=path, token=token)

    def bucket_exists(self) -> bool:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except (ClientError, BotoCoreError):
            return False

    def list_objects(self, prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        """List objects in the bucket, optionally under a prefix."""
        kwargs = {"Bucket": self.bucket_name}
        if prefix:
            kwargs["Prefix"] = prefix

        files = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**kwargs):
                for obj in page.get("Contents", []):
                    files.append({
                        "key": obj["Key"],
                        "size": obj["Size"],
                        "modified": obj["LastModified"].isoformat(),
                        "etag": obj["ETag"].strip('"'),
                    })
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("Failed to list files", details=str(e)) from e
        return files

    def bucket_size(self, prefix: Optional[str] = None) -> int:
        """Total size in bytes of the objects under a prefix."""
        return sum(f["size"] for f in self.list_objects(prefix))
