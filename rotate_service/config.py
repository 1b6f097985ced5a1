import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from dotenv import load_dotenv

from .utils.retry import RetryPolicy

load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised when credentials or settings required by a job are missing."""


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Config:
    SHOPIFY_STORE_DOMAIN = os.getenv("SHOPIFY_STORE_DOMAIN")
    SHOPIFY_ADMIN_TOKEN = os.getenv("SHOPIFY_ADMIN_TOKEN") or os.getenv("SHOPIFY_ACCESS_TOKEN")
    SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-07")
    SHOPIFY_FILE_POLL_ATTEMPTS = _env_int("SHOPIFY_FILE_POLL_ATTEMPTS", 5)
    SHOPIFY_FILE_POLL_INTERVAL_SECONDS = _env_float("SHOPIFY_FILE_POLL_INTERVAL_SECONDS", 2.0)

    # noop | data_uri | shopify_files | s3 | r2
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "r2")

    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_REGION = os.getenv("S3_REGION", "us-east-1")
    S3_ACCESS_KEY_ID = os.getenv("S3_ACCESS_KEY_ID")
    S3_SECRET_ACCESS_KEY = os.getenv("S3_SECRET_ACCESS_KEY")
    S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")

    R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
    R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
    R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME")
    R2_ENDPOINT = os.getenv("R2_ENDPOINT")
    R2_PUBLIC_BASE_URL = os.getenv("R2_PUBLIC_BASE_URL")

    METAFIELD_TYPE = os.getenv("METAFIELD_TYPE", "single_line_text_field")
    LINE_ITEM_PROPERTY_NAME = os.getenv("LINE_ITEM_PROPERTY_NAME", "_tib_design_link_1")
    DEFAULT_ROTATION = _env_int("DEFAULT_ROTATION", 90)

    PRE_DELAY_SECONDS = _env_float("PRE_DELAY_SECONDS", 180)
    FETCH_MAX_ATTEMPTS = _env_int("FETCH_MAX_ATTEMPTS", 4)
    FETCH_RETRY_DELAY_SECONDS = _env_float("FETCH_RETRY_DELAY_SECONDS", 60)
    FETCH_RETRY_BACKOFF = _env_float("FETCH_RETRY_BACKOFF", 1.0)
    FETCH_RETRY_JITTER_SECONDS = _env_float("FETCH_RETRY_JITTER_SECONDS", 0)
    HTTP_TIMEOUT_SECONDS = _env_float("HTTP_TIMEOUT_SECONDS", 60)

    # detached | sync
    PROCESSING_MODE = os.getenv("PROCESSING_MODE", "detached")
    WORKER_POOL_SIZE = _env_int("WORKER_POOL_SIZE", 4)
    MAX_PENDING_JOBS = _env_int("MAX_PENDING_JOBS", 32)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class DevConfig(Config):
    DEBUG = True


class ProdConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SHOPIFY_STORE_DOMAIN = "test-store.myshopify.com"
    SHOPIFY_ADMIN_TOKEN = "test_shopify_token"
    SHOPIFY_API_VERSION = "2024-07"
    STORAGE_BACKEND = "data_uri"
    PRE_DELAY_SECONDS = 0
    FETCH_RETRY_DELAY_SECONDS = 0
    PROCESSING_MODE = "sync"


@dataclass(frozen=True)
class WorkflowSettings:
    """Everything the rotate-and-update workflow needs, resolved once from config."""

    shopify_store_domain: str | None
    shopify_admin_token: str | None
    metafield_type: str = "single_line_text_field"
    line_item_property: str = "_tib_design_link_1"
    default_rotation: int = 90
    pre_delay_seconds: float = 180
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def has_shopify_credentials(self) -> bool:
        return bool(self.shopify_store_domain and self.shopify_admin_token)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "WorkflowSettings":
        return cls(
            shopify_store_domain=config.get("SHOPIFY_STORE_DOMAIN"),
            shopify_admin_token=config.get("SHOPIFY_ADMIN_TOKEN"),
            metafield_type=config.get("METAFIELD_TYPE", "single_line_text_field"),
            line_item_property=config.get("LINE_ITEM_PROPERTY_NAME", "_tib_design_link_1"),
            default_rotation=int(config.get("DEFAULT_ROTATION", 90)),
            pre_delay_seconds=float(config.get("PRE_DELAY_SECONDS", 180)),
            retry_policy=RetryPolicy(
                max_attempts=int(config.get("FETCH_MAX_ATTEMPTS", 4)),
                delay_seconds=float(config.get("FETCH_RETRY_DELAY_SECONDS", 60)),
                backoff=float(config.get("FETCH_RETRY_BACKOFF", 1.0)),
                jitter_seconds=float(config.get("FETCH_RETRY_JITTER_SECONDS", 0)),
            ),
        )
