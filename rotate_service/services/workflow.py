import logging
from typing import Callable

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type

from ..config import ConfigurationError, WorkflowSettings
from ..jobs import Job, JobResult, RotatedAsset
from ..storage.object_store import ObjectStore, StorageError
from ..utils.images import ImageFetchError, fetch_image, rotate_image
from ..utils.retry import Clock, SystemClock
from .shopify_client import ShopifyClient, ShopifyError

logger = logging.getLogger(__name__)


def _log_failed_attempt(retry_state: RetryCallState):
    logger.warning("Error in attempt %s: %s", retry_state.attempt_number, retry_state.outcome.exception())


def _log_next_wait(retry_state: RetryCallState):
    logger.info("Waiting %.0f seconds before next attempt", retry_state.next_action.sleep)


class RotateAndUpdateWorkflow:
    """Download an image, rotate it, store it and point a Shopify metafield at it.

    Each call to run() handles exactly one job and owns its buffers. The
    pre-delay exists to give the upstream design editor time to finish
    writing the image; nothing confirms it actually has, so a slow writer
    can still be fetched half-done.
    """

    def __init__(
        self,
        settings: WorkflowSettings,
        shopify: ShopifyClient | None,
        store: ObjectStore | None,
        fetcher: Callable[[str], bytes] = fetch_image,
        rotator: Callable[[bytes, int], bytes] = rotate_image,
        clock: Clock | None = None,
        store_error: Exception | None = None,
    ):
        self.settings = settings
        self.shopify = shopify
        self.store = store
        self.fetcher = fetcher
        self.rotator = rotator
        self.clock = clock or SystemClock()
        # Set when the store could not be built; reported per job as a configuration failure
        self.store_error = store_error

    def _sleep(self, seconds: float, result: JobResult):
        if seconds > 0:
            self.clock.sleep(seconds)
            result.waited_seconds += seconds

    def _check_configuration(self):
        if not self.settings.has_shopify_credentials or self.shopify is None:
            raise ConfigurationError("Missing SHOPIFY_STORE_DOMAIN or SHOPIFY_ADMIN_TOKEN")
        if self.store is None:
            raise ConfigurationError(str(self.store_error or "No object store configured"))

    def _retrying(self, result: JobResult) -> Retrying:
        policy = self.settings.retry_policy
        return Retrying(
            stop=policy.stop(),
            wait=policy.wait(),
            retry=retry_if_exception_type(ImageFetchError),
            sleep=lambda seconds: self._sleep(seconds, result),
            after=_log_failed_attempt,
            before_sleep=_log_next_wait,
        )

    def fetch_and_rotate(self, job: Job, result: JobResult) -> RotatedAsset:
        try:
            for attempt in self._retrying(result):
                with attempt:
                    result.attempts = attempt.retry_state.attempt_number
                    logger.info("Attempt %s to download image: %s", result.attempts, job.image_url)
                    raw = self.fetcher(job.image_url)
                    logger.info("Rotating image by %s degrees", job.rotation)
                    rotated = self.rotator(raw, job.rotation)
                    logger.info("Image rotated successfully")
                    return RotatedAsset(data=rotated, source_url=job.image_url)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise ImageFetchError(f"All {result.attempts} attempts failed: {last_error}") from last_error

    def object_key(self, job: Job) -> str:
        return f"rotated/rotated-{job.product_id}-{int(self.clock.now() * 1000)}.png"

    def run(self, job: Job) -> JobResult:
        logger.info("=== Start rotate-and-update job === %s", job.summary())
        result = JobResult(status="running")
        try:
            self._check_configuration()

            logger.info("Waiting %.0f seconds before first attempt", self.settings.pre_delay_seconds)
            self._sleep(self.settings.pre_delay_seconds, result)

            asset = self.fetch_and_rotate(job, result)

            url = self.store.put(asset, self.object_key(job))
            result.url = url

            self.shopify.set_product_metafield(
                job.product_id,
                job.metafield_namespace,
                job.metafield_key,
                url,
                type=self.settings.metafield_type,
            )

            if job.updates_order:
                logger.info(
                    "Updating line item property %s in order %s for line item %s",
                    self.settings.line_item_property, job.order_id, job.line_item_id,
                )
                self.shopify.update_order_line_item_property(
                    job.order_id, job.line_item_id, self.settings.line_item_property, url
                )
                result.order_updated = True
            else:
                logger.info("No order_id / line_item_id on job; skipping order property update")

            result.status = "succeeded"
            logger.info("Finished job successfully, new URL: %s", url)
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            return self._fail(result, "configuration", e)
        except ImageFetchError as e:
            logger.error("All attempts to rotate image failed: %s", e)
            return self._fail(result, "fetch", e)
        except StorageError as e:
            logger.error("Storage failed: %s", e)
            return self._fail(result, "storage", e)
        except ShopifyError as e:
            logger.error("Shopify update failed: %s", e)
            return self._fail(result, "shopify", e)
        except Exception as e:
            logger.exception("Unexpected error in rotate-and-update job")
            return self._fail(result, "unexpected", e)
        finally:
            logger.info("=== End rotate-and-update job ===")
        return result

    @staticmethod
    def _fail(result: JobResult, kind: str, error: Exception) -> JobResult:
        result.status = "failed"
        result.error_kind = kind
        result.error = str(error)
        return result
