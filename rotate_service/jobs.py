from dataclasses import dataclass
from typing import Any

REQUIRED_FIELDS = ("image_url", "product_id", "metafield_namespace", "metafield_key")


class JobValidationError(ValueError):
    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise JobValidationError(f"Field {name} must be numeric")
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise JobValidationError(f"Field {name} must be numeric") from None


def _is_missing(name: str, value: Any) -> bool:
    if value in (None, ""):
        return True
    # Shopify ids start at 1, so a product id of 0 names nothing
    return name == "product_id" and str(value).strip() == "0"


@dataclass(frozen=True)
class Job:
    """One webhook delivery: which image to rotate and where to write the result."""

    image_url: str
    product_id: int
    metafield_namespace: str
    metafield_key: str
    rotation: int = 90
    order_id: int | None = None
    line_item_id: int | None = None

    @property
    def updates_order(self) -> bool:
        return self.order_id is not None and self.line_item_id is not None

    @classmethod
    def from_payload(cls, payload: Any, default_rotation: int = 90) -> "Job":
        if not isinstance(payload, dict):
            raise JobValidationError("Payload must be a JSON object", list(REQUIRED_FIELDS))

        missing = [f for f in REQUIRED_FIELDS if _is_missing(f, payload.get(f))]
        if missing:
            raise JobValidationError(f"Missing required fields: {', '.join(missing)}", missing)

        # rotation of 0 or null falls back to the default, same as a missing value
        rotation = payload.get("rotation")
        rotation = _to_int("rotation", rotation) if rotation not in (None, "") else 0

        order_id = payload.get("order_id")
        line_item_id = payload.get("line_item_id")

        return cls(
            image_url=str(payload["image_url"]).strip(),
            product_id=_to_int("product_id", payload["product_id"]),
            metafield_namespace=str(payload["metafield_namespace"]),
            metafield_key=str(payload["metafield_key"]),
            rotation=rotation or default_rotation,
            order_id=_to_int("order_id", order_id) if order_id not in (None, "") else None,
            line_item_id=_to_int("line_item_id", line_item_id) if line_item_id not in (None, "") else None,
        )

    def summary(self) -> dict:
        return {
            "image_url": self.image_url,
            "product_id": self.product_id,
            "metafield": f"{self.metafield_namespace}.{self.metafield_key}",
            "rotation": self.rotation,
            "order_id": self.order_id,
            "line_item_id": self.line_item_id,
        }


@dataclass(frozen=True)
class RotatedAsset:
    data: bytes
    source_url: str
    content_type: str = "image/png"


@dataclass
class JobResult:
    status: str
    url: str | None = None
    attempts: int = 0
    error: str | None = None
    error_kind: str | None = None
    order_updated: bool = False
    waited_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"

    def to_dict(self) -> dict:
        body = {
            "status": self.status,
            "url": self.url,
            "attempts": self.attempts,
            "order_updated": self.order_updated,
        }
        if self.error:
            body["error"] = self.error
            body["error_kind"] = self.error_kind
        return body
