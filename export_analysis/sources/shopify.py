"""
Shopify Admin API Source

Exports orders, products and customers from a Shopify store as flat
records. Pages are followed through the ``Link: rel="next"`` header until
``limit`` records have been collected.
"""
import logging
from typing import List, Dict, Any, Optional

import requests

from config.settings import ShopifyConfig, ExportConfig
from export_analysis.core.errors import ConfigurationError, UnsupportedOptionError
from export_analysis.sources.base import BaseSource, SourceResult, iso_date, to_float

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 250


def flatten_order(order: Dict[str, Any]) -> Dict[str, Any]:
    customer = order.get("customer") or {}
    return {
        "id": order["id"],
        "name": order.get("name"),
        "email": order.get("email"),
        "created_at": order.get("created_at"),
        "total_price": to_float(order.get("total_price")),
        "subtotal_price": to_float(order.get("subtotal_price")),
        "total_tax": to_float(order.get("total_tax")),
        "currency": order.get("currency"),
        "financial_status": order.get("financial_status"),
        "fulfillment_status": order.get("fulfillment_status"),
        "item_count": len(order.get("line_items") or []),
        "customer_id": customer.get("id"),
    }


def flatten_product(product: Dict[str, Any]) -> Dict[str, Any]:
    variants = product.get("variants") or []
    return {
        "id": product["id"],
        "title": product.get("title"),
        "vendor": product.get("vendor"),
        "product_type": product.get("product_type"),
        "created_at": product.get("created_at"),
        "updated_at": product.get("updated_at"),
        "status": product.get("status"),
        "variants_count": len(variants),
        "total_inventory": sum(v.get("inventory_quantity") or 0 for v in variants),
    }


def flatten_customer(customer: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": customer["id"],
        "email": customer.get("email"),
        "first_name": customer.get("first_name"),
        "last_name": customer.get("last_name"),
        "orders_count": customer.get("orders_count"),
        "total_spent": to_float(customer.get("total_spent")),
        "created_at": customer.get("created_at"),
        "updated_at": customer.get("updated_at"),
        "state": customer.get("state"),
    }


# export type (endpoint and response key) -> flattener
EXPORT_TYPES = {
    "orders": flatten_order,
    "products": flatten_product,
    "customers": flatten_customer,
}


class ShopifySource(BaseSource):
    """Shopify store connector over the Admin REST API."""

    name = "shopify"
    display_name = "Shopify"

    def __init__(
        self,
        config: Optional[ShopifyConfig] = None,
        export_config: Optional[ExportConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(export_config)
        self.config = config or ShopifyConfig()

        if not self.config.shop_url or not self.config.access_token:
            raise ConfigurationError("SHOPIFY_SHOP_URL and SHOPIFY_ACCESS_TOKEN are required")

        self.base_url = f"https://{self.config.shop_url}/admin/api/{self.config.api_version}"
        self.session = session or requests.Session()
        self.session.headers.update({
            "X-Shopify-Access-Token": self.config.access_token,
            "Content-Type": "application/json",
        })

    def fetch(
        self,
        type: str = "orders",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: str = "any",
        limit: int = 250,
        **_,
    ) -> SourceResult:
        if type not in EXPORT_TYPES:
            raise UnsupportedOptionError("Shopify export type", type, list(EXPORT_TYPES))

        params: Dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE)}
        if type == "orders":
            params["status"] = status
            if start_date:
                params["created_at_min"] = iso_date(start_date)
            if end_date:
                params["created_at_max"] = iso_date(end_date)

        items = self._get_paginated(f"{self.base_url}/{type}.json", type, params, limit)

        errors: List[str] = []
        data = self.flatten_all(items, EXPORT_TYPES[type], errors)

        return SourceResult(
            data=data,
            source=self.name,
            metadata={
                "shop": self.config.shop_url,
                "type": type,
                "row_count": len(data),
            },
            errors=errors,
        )

    def _get_paginated(
        self,
        url: str,
        key: str,
        params: Dict[str, Any],
        limit: int,
    ) -> List[Dict[str, Any]]:
        """GET every page up to ``limit`` items, pausing between requests."""
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = url
        next_params: Optional[Dict[str, Any]] = params

        while next_url and len(items) < limit:
            if items:
                self.pause()
            response = self.session.get(
                next_url,
                params=next_params,
                timeout=self.export_config.http_timeout_seconds,
            )
            response.raise_for_status()
            items.extend(response.json().get(key, []))

            # The next-page URL already carries page_info and limit
            next_url = response.links.get("next", {}).get("url")
            next_params = None
            logger.debug(f"Fetched {len(items)} Shopify {key}")

        return items[:limit]
