import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import ConfigurationError
from ..jobs import RotatedAsset
from ..services.shopify_client import ShopifyClient, ShopifyError

logger = logging.getLogger(__name__)

BACKENDS = ("noop", "data_uri", "shopify_files", "s3", "r2")


class StorageError(RuntimeError):
    """An object store could not persist the rotated image."""


class ObjectStore(ABC):
    """Persists a rotated asset and returns the URL it can be read back from."""

    name = "base"

    @abstractmethod
    def put(self, asset: RotatedAsset, key: str) -> str:
        ...


class NoopStore(ObjectStore):
    """Stores nothing; hands back the original, unrotated image URL."""

    name = "noop"

    def put(self, asset: RotatedAsset, key: str) -> str:
        return asset.source_url


class DataUriStore(ObjectStore):
    name = "data_uri"

    def put(self, asset: RotatedAsset, key: str) -> str:
        b64 = base64.b64encode(asset.data).decode("utf-8")
        return f"data:{asset.content_type};base64,{b64}"


class ShopifyFilesStore(ObjectStore):
    name = "shopify_files"

    def __init__(self, shopify: ShopifyClient):
        self.shopify = shopify

    def put(self, asset: RotatedAsset, key: str) -> str:
        filename = key.rsplit("/", 1)[-1]
        try:
            return self.shopify.upload_file(filename, asset.data, asset.content_type)
        except ShopifyError as e:
            raise StorageError(f"Shopify Files upload failed: {e}") from e


class S3Store(ObjectStore):
    """S3 bucket addressed with virtual-hosted-style URLs."""

    name = "s3"

    def __init__(self, client, bucket: str, region: str = "us-east-1", public_base_url: str | None = None):
        self.client = client
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url

    def _put_object(self, asset: RotatedAsset, key: str):
        logger.info("Uploading rotated image to %s: bucket=%s key=%s", self.name, self.bucket, key)
        try:
            result = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=asset.data,
                ContentType=asset.content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"{self.name} put_object failed: {e}") from e
        logger.debug("%s PutObject result: %s", self.name, result)

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.region in (None, "", "us-east-1"):
            return f"https://{self.bucket}.s3.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put(self, asset: RotatedAsset, key: str) -> str:
        self._put_object(asset, key)
        url = self.public_url(key)
        logger.info("Uploaded to %s URL: %s", self.name, url)
        return url


class R2Store(S3Store):
    """Cloudflare R2 bucket served from a public base URL."""

    name = "r2"

    def __init__(self, client, bucket: str, public_base_url: str):
        super().__init__(client, bucket, region="auto", public_base_url=public_base_url)

    def public_url(self, key: str) -> str:
        # The base may already end with the bucket segment
        base = self.public_base_url.rstrip("/")
        bucket_segment = f"/{self.bucket}"
        if not base.endswith(bucket_segment):
            base = f"{base}{bucket_segment}"
        return f"{base}/{key}"


def _require(config: Mapping[str, Any], keys: tuple[str, ...], backend: str):
    missing = [k for k in keys if not config.get(k)]
    if missing:
        raise ConfigurationError(f"{backend} storage config missing: {', '.join(missing)}")


def build_object_store(config: Mapping[str, Any], shopify: ShopifyClient | None = None) -> ObjectStore:
    """Pick the storage backend named by STORAGE_BACKEND and wire its client."""
    backend = (config.get("STORAGE_BACKEND") or "r2").strip().lower()

    if backend == "noop":
        return NoopStore()
    if backend == "data_uri":
        return DataUriStore()
    if backend == "shopify_files":
        if shopify is None:
            raise ConfigurationError("shopify_files storage needs SHOPIFY_STORE_DOMAIN and SHOPIFY_ADMIN_TOKEN")
        return ShopifyFilesStore(shopify)
    if backend == "s3":
        _require(config, ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"), "s3")
        client = boto3.client(
            "s3",
            region_name=config.get("S3_REGION") or "us-east-1",
            aws_access_key_id=config["S3_ACCESS_KEY_ID"],
            aws_secret_access_key=config["S3_SECRET_ACCESS_KEY"],
        )
        return S3Store(
            client,
            bucket=config["S3_BUCKET"],
            region=config.get("S3_REGION") or "us-east-1",
            public_base_url=config.get("S3_PUBLIC_BASE_URL"),
        )
    if backend == "r2":
        _require(
            config,
            ("R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME", "R2_ENDPOINT", "R2_PUBLIC_BASE_URL"),
            "r2",
        )
        client = boto3.client(
            "s3",
            region_name="auto",
            endpoint_url=config["R2_ENDPOINT"],
            aws_access_key_id=config["R2_ACCESS_KEY_ID"],
            aws_secret_access_key=config["R2_SECRET_ACCESS_KEY"],
            config=BotoConfig(s3={"addressing_style": "path"}),
        )
        return R2Store(client, bucket=config["R2_BUCKET_NAME"], public_base_url=config["R2_PUBLIC_BASE_URL"])

    raise ConfigurationError(f"Unknown STORAGE_BACKEND {backend!r}; expected one of {', '.join(BACKENDS)}")
