# rotate_service/extensions.py
from functools import partial
from typing import Any, Mapping

from flask_cors import CORS

from .config import ConfigurationError, WorkflowSettings
from .services.job_runner import JobRunner
from .services.shopify_client import ShopifyClient
from .services.workflow import RotateAndUpdateWorkflow
from .storage.object_store import build_object_store
from .utils.images import fetch_image
from .utils.retry import Clock, SystemClock

# CORS is a real Flask extension (keeps init_app)
cors = CORS()


def build_shopify_client(config: Mapping[str, Any], clock: Clock | None = None) -> ShopifyClient | None:
    if not (config.get("SHOPIFY_STORE_DOMAIN") and config.get("SHOPIFY_ADMIN_TOKEN")):
        return None
    return ShopifyClient(
        store_domain=config["SHOPIFY_STORE_DOMAIN"],
        admin_token=config["SHOPIFY_ADMIN_TOKEN"],
        api_version=config.get("SHOPIFY_API_VERSION", "2024-07"),
        timeout=float(config.get("HTTP_TIMEOUT_SECONDS", 60)),
        clock=clock,
        file_poll_attempts=int(config.get("SHOPIFY_FILE_POLL_ATTEMPTS", 5)),
        file_poll_interval=float(config.get("SHOPIFY_FILE_POLL_INTERVAL_SECONDS", 2.0)),
    )


def build_workflow(config: Mapping[str, Any], clock: Clock | None = None) -> RotateAndUpdateWorkflow:
    """Wire the workflow from a flat config mapping.

    A store that cannot be built (missing credentials) does not stop the app
    from starting; each job then fails with a configuration error instead.
    """
    clock = clock or SystemClock()
    shopify = build_shopify_client(config, clock=clock)
    store, store_error = None, None
    try:
        store = build_object_store(config, shopify)
    except ConfigurationError as e:
        store_error = e

    return RotateAndUpdateWorkflow(
        settings=WorkflowSettings.from_config(config),
        shopify=shopify,
        store=store,
        fetcher=partial(fetch_image, timeout=float(config.get("HTTP_TIMEOUT_SECONDS", 60))),
        clock=clock,
        store_error=store_error,
    )


def build_job_runner(config: Mapping[str, Any], workflow: RotateAndUpdateWorkflow) -> JobRunner:
    return JobRunner(
        workflow,
        max_workers=int(config.get("WORKER_POOL_SIZE", 4)),
        max_pending=int(config.get("MAX_PENDING_JOBS", 32)),
    )
