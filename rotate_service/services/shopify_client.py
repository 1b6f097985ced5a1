import json
import logging

import httpx

from ..utils.retry import Clock, SystemClock

logger = logging.getLogger(__name__)


class ShopifyError(ValueError):
    def __init__(self, message: str, user_errors: list | None = None, status_code: int | None = None):
        super().__init__(message)
        self.user_errors = user_errors or []
        self.status_code = status_code


def _raise_for_user_errors(operation: str, payload: dict):
    user_errors = payload.get("userErrors") or []
    if user_errors:
        msg = "; ".join(e.get("message", "Unknown user error") for e in user_errors)
        logger.error("%s userErrors: %s", operation, user_errors)
        raise ShopifyError(f"{operation} returned userErrors: {msg}", user_errors=user_errors)


class ShopifyClient:
    def __init__(
        self,
        store_domain: str,
        admin_token: str,
        api_version: str = "2024-07",
        timeout: float = 60,
        clock: Clock | None = None,
        file_poll_attempts: int = 5,
        file_poll_interval: float = 2.0,
    ):
        self.domain = store_domain
        self.token = admin_token
        self.api_version = api_version
        self.timeout = timeout
        self.clock = clock or SystemClock()
        self.file_poll_attempts = file_poll_attempts
        self.file_poll_interval = file_poll_interval
        self.base = f"https://{self.domain}/admin/api/{self.api_version}"
        self.headers = {
            "X-Shopify-Access-Token": self.token,
            "Content-Type": "application/json",
        }

    @staticmethod
    def _to_gid(kind: str, value) -> str:
        v = str(value)
        return v if v.startswith("gid://") else f"gid://shopify/{kind}/{v}"

    @classmethod
    def _to_product_gid(cls, product_id) -> str:
        return cls._to_gid("Product", product_id)

    @classmethod
    def _to_order_gid(cls, order_id) -> str:
        return cls._to_gid("Order", order_id)

    @classmethod
    def _to_line_item_gid(cls, line_item_id) -> str:
        return cls._to_gid("LineItem", line_item_id)

    def _graphql(self, query: str, variables: dict) -> dict:
        url = f"{self.base}/graphql.json"
        payload = {"query": query, "variables": variables}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                r = client.post(url, headers=self.headers, json=payload)
        except httpx.HTTPError as e:
            raise ShopifyError(f"Shopify GraphQL request failed: {e}") from e
        if not r.is_success:
            logger.error("Shopify GraphQL HTTP %s: %s", r.status_code, r.text)
            raise ShopifyError(f"Shopify GraphQL HTTP {r.status_code}", status_code=r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            logger.error("Shopify GraphQL returned non-JSON body: %s", r.text[:500])
            raise ShopifyError(f"Shopify GraphQL returned invalid JSON: {e}", status_code=r.status_code) from e
        logger.debug("Shopify GraphQL response: %s", json.dumps(body, indent=2))
        if body.get("errors"):
            messages = ", ".join(e.get("message", "Unknown GraphQL error") for e in body["errors"])
            raise ShopifyError(messages, user_errors=body["errors"])
        return body.get("data") or {}

    # ------------------------------------------------------------------
    # Metafields
    # ------------------------------------------------------------------
    def set_product_metafield(
        self,
        product_id,
        namespace: str,
        key: str,
        value: str,
        type: str = "single_line_text_field",
    ) -> dict:
        """Set one metafield on a product and return the metafield Shopify stored."""
        mutation = """
        mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
          metafieldsSet(metafields: $metafields) {
            metafields {
              id
              namespace
              key
              value
              type
            }
            userErrors {
              field
              message
            }
          }
        }
        """
        metafields = [
            {
                "ownerId": self._to_product_gid(product_id),
                "namespace": namespace,
                "key": key,
                "type": type,
                "value": value,
            }
        ]
        data = self._graphql(mutation, {"metafields": metafields})
        payload = data.get("metafieldsSet") or {}
        _raise_for_user_errors("metafieldsSet", payload)
        stored = payload.get("metafields") or []
        return stored[0] if stored else {}

    # ------------------------------------------------------------------
    # Files (staged upload)
    # ------------------------------------------------------------------
    def staged_upload_create(self, filename: str, mime_type: str, file_size: int) -> dict:
        mutation = """
        mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
          stagedUploadsCreate(input: $input) {
            stagedTargets {
              url
              resourceUrl
              parameters {
                name
                value
              }
            }
            userErrors {
              field
              message
            }
          }
        }
        """
        data = self._graphql(
            mutation,
            {
                "input": [
                    {
                        "filename": filename,
                        "mimeType": mime_type,
                        "resource": "IMAGE",
                        "httpMethod": "POST",
                        "fileSize": str(file_size),
                    }
                ]
            },
        )
        payload = data.get("stagedUploadsCreate") or {}
        _raise_for_user_errors("stagedUploadsCreate", payload)
        targets = payload.get("stagedTargets") or []
        if not targets:
            raise ShopifyError("stagedUploadsCreate returned no staged target")
        return targets[0]

    def upload_to_staged_target(self, target: dict, filename: str, data: bytes, mime_type: str):
        form = {p["name"]: p["value"] for p in (target.get("parameters") or [])}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                r = client.post(target["url"], data=form, files={"file": (filename, data, mime_type)})
        except httpx.HTTPError as e:
            raise ShopifyError(f"Staged upload failed: {e}") from e
        if not r.is_success:
            raise ShopifyError(f"Staged upload failed with status {r.status_code}", status_code=r.status_code)

    def files_create(self, resource_url: str, alt: str | None = None) -> dict:
        mutation = """
        mutation filesCreate($files: [FileCreateInput!]!) {
          filesCreate(files: $files) {
            files {
              id
              fileStatus
              ... on MediaImage {
                image {
                  url
                }
              }
            }
            userErrors {
              field
              message
            }
          }
        }
        """
        file_input = {"originalSource": resource_url, "contentType": "IMAGE"}
        if alt:
            file_input["alt"] = alt
        data = self._graphql(mutation, {"files": [file_input]})
        payload = data.get("filesCreate") or {}
        _raise_for_user_errors("filesCreate", payload)
        files = payload.get("files") or []
        if not files:
            raise ShopifyError("filesCreate returned no file")
        return files[0]

    def get_file(self, file_id: str) -> dict:
        query = """
        query fileStatus($id: ID!) {
          node(id: $id) {
            id
            ... on MediaImage {
              fileStatus
              image {
                url
              }
            }
          }
        }
        """
        data = self._graphql(query, {"id": file_id})
        return data.get("node") or {}

    def upload_file(self, filename: str, data: bytes, mime_type: str = "image/png") -> str:
        """Push bytes through Shopify's staged upload flow and return the served file URL.

        Newly created files are processed asynchronously, so the image URL is
        polled until Shopify reports it or the poll budget runs out.
        """
        target = self.staged_upload_create(filename, mime_type, len(data))
        self.upload_to_staged_target(target, filename, data, mime_type)
        created = self.files_create(target["resourceUrl"], alt=filename)

        file_obj = created
        for attempt in range(self.file_poll_attempts + 1):
            url = ((file_obj.get("image") or {}).get("url"))
            if url:
                return url
            if file_obj.get("fileStatus") == "FAILED":
                raise ShopifyError(f"Shopify failed to process file {created.get('id')}")
            if attempt == self.file_poll_attempts:
                break
            self.clock.sleep(self.file_poll_interval)
            file_obj = self.get_file(created["id"])
        raise ShopifyError(f"File {created.get('id')} has no URL after processing")

    # ------------------------------------------------------------------
    # Order edits
    # ------------------------------------------------------------------
    def order_edit_begin(self, order_id) -> dict:
        mutation = """
        mutation orderEditBegin($id: ID!) {
          orderEditBegin(id: $id) {
            calculatedOrder {
              id
              lineItems(first: 50) {
                edges {
                  node {
                    id
                    originalLineItem {
                      id
                    }
                  }
                }
              }
            }
            userErrors {
              field
              message
            }
          }
        }
        """
        data = self._graphql(mutation, {"id": self._to_order_gid(order_id)})
        payload = data.get("orderEditBegin") or {}
        _raise_for_user_errors("orderEditBegin", payload)
        calculated = payload.get("calculatedOrder")
        if not calculated:
            raise ShopifyError("No calculatedOrder returned from orderEditBegin")
        return calculated

    @classmethod
    def find_calculated_line_item(cls, calculated_order: dict, line_item_id) -> str | None:
        original_gid = cls._to_line_item_gid(line_item_id)
        for edge in ((calculated_order.get("lineItems") or {}).get("edges") or []):
            node = edge.get("node") or {}
            if (node.get("originalLineItem") or {}).get("id") == original_gid:
                return node.get("id")
        return None

    def order_edit_set_line_item_properties(self, calculated_order_id: str, calculated_line_item_id: str, properties: list[dict]) -> dict:
        mutation = """
        mutation orderEditSetLineItemProperties(
          $id: ID!
          $lineItemId: ID!
          $properties: [OrderLineItemPropertyInput!]!
        ) {
          orderEditSetLineItemProperties(
            id: $id
            lineItemId: $lineItemId
            properties: $properties
          ) {
            calculatedOrder {
              id
            }
            userErrors {
              field
              message
            }
          }
        }
        """
        data = self._graphql(
            mutation,
            {"id": calculated_order_id, "lineItemId": calculated_line_item_id, "properties": properties},
        )
        payload = data.get("orderEditSetLineItemProperties") or {}
        _raise_for_user_errors("orderEditSetLineItemProperties", payload)
        return payload

    def order_edit_commit(self, calculated_order_id: str, staff_note: str | None = None, notify_customer: bool = False) -> dict:
        mutation = """
        mutation orderEditCommit($id: ID!, $notifyCustomer: Boolean!, $staffNote: String) {
          orderEditCommit(id: $id, notifyCustomer: $notifyCustomer, staffNote: $staffNote) {
            order {
              id
            }
            userErrors {
              field
              message
            }
          }
        }
        """
        data = self._graphql(
            mutation,
            {"id": calculated_order_id, "notifyCustomer": notify_customer, "staffNote": staff_note},
        )
        payload = data.get("orderEditCommit") or {}
        _raise_for_user_errors("orderEditCommit", payload)
        return payload.get("order") or {}

    def update_order_line_item_property(self, order_id, line_item_id, name: str, value: str) -> dict:
        """Overwrite one line-item property on an existing order via an order edit.

        Runs begin -> locate calculated line item -> set properties -> commit;
        the customer is not notified.
        """
        logger.info("Starting order edit for %s", self._to_order_gid(order_id))
        calculated = self.order_edit_begin(order_id)

        calculated_line_item_id = self.find_calculated_line_item(calculated, line_item_id)
        if not calculated_line_item_id:
            raise ShopifyError(
                f"No calculated line item matches {self._to_line_item_gid(line_item_id)}"
            )
        logger.info("Found calculated line item %s for line item %s", calculated_line_item_id, line_item_id)

        self.order_edit_set_line_item_properties(
            calculated["id"], calculated_line_item_id, [{"name": name, "value": value}]
        )
        order = self.order_edit_commit(calculated["id"], staff_note=f"Updated {name} via webhook")
        logger.info("Updated line item property %s on order %s", name, order_id)
        return order
