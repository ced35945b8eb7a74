"""
Stripe API Source

Exports payment intents, customers, subscriptions and charges as flat
records. Amounts come back from Stripe in minor units and are divided by
100; timestamps are converted to ISO-8601 UTC strings.
"""
import logging
from typing import List, Dict, Any, Optional

import requests

from config.settings import StripeConfig, ExportConfig
from export_analysis.core.errors import ConfigurationError, UnsupportedOptionError
from export_analysis.sources.base import BaseSource, SourceResult, iso_from_epoch, epoch_seconds

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"
MAX_PAGE_SIZE = 100


def _amount(minor_units: Optional[int]) -> Optional[float]:
    if minor_units is None:
        return None
    return minor_units / 100


def _upper(currency: Optional[str]) -> Optional[str]:
    return currency.upper() if currency else currency


def flatten_payment(payment: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": payment["id"],
        "amount": _amount(payment.get("amount")),
        "currency": _upper(payment.get("currency")),
        "status": payment.get("status"),
        "created": iso_from_epoch(payment.get("created")),
        "customer": payment.get("customer"),
        "description": payment.get("description"),
        "payment_method": payment.get("payment_method"),
    }


def flatten_customer(customer: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": customer["id"],
        "email": customer.get("email"),
        "name": customer.get("name"),
        "created": iso_from_epoch(customer.get("created")),
        "balance": _amount(customer.get("balance")),
        "currency": customer.get("currency"),
        "description": customer.get("description"),
    }


def flatten_subscription(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or [{}]
    price = items[0].get("price") or {}
    return {
        "id": subscription["id"],
        "customer": subscription.get("customer"),
        "status": subscription.get("status"),
        "created": iso_from_epoch(subscription.get("created")),
        "current_period_start": iso_from_epoch(subscription.get("current_period_start")),
        "current_period_end": iso_from_epoch(subscription.get("current_period_end")),
        "amount": _amount(price.get("unit_amount")),
        "currency": subscription.get("currency"),
        "interval": (price.get("recurring") or {}).get("interval"),
    }


def flatten_charge(charge: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": charge["id"],
        "amount": _amount(charge.get("amount")),
        "currency": _upper(charge.get("currency")),
        "status": charge.get("status"),
        "paid": charge.get("paid"),
        "refunded": charge.get("refunded"),
        "created": iso_from_epoch(charge.get("created")),
        "customer": charge.get("customer"),
        "description": charge.get("description"),
    }


# export type -> (API resource, flattener)
EXPORT_TYPES = {
    "payments": ("payment_intents", flatten_payment),
    "customers": ("customers", flatten_customer),
    "subscriptions": ("subscriptions", flatten_subscription),
    "charges": ("charges", flatten_charge),
}


class StripeSource(BaseSource):
    """Stripe connector over the REST API."""

    name = "stripe"
    display_name = "Stripe"

    def __init__(
        self,
        config: Optional[StripeConfig] = None,
        export_config: Optional[ExportConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(export_config)
        self.config = config or StripeConfig()

        if not self.config.api_key:
            raise ConfigurationError("STRIPE_API_KEY is required")

        self.session = session or requests.Session()
        self.session.auth = (self.config.api_key, "")

    def fetch(
        self,
        type: str = "payments",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 100,
        **_,
    ) -> SourceResult:
        if type not in EXPORT_TYPES:
            raise UnsupportedOptionError("Stripe export type", type, list(EXPORT_TYPES))
        resource, flatten = EXPORT_TYPES[type]

        params: Dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE)}
        gte = epoch_seconds(start_date)
        lte = epoch_seconds(end_date)
        if gte is not None:
            params["created[gte]"] = gte
        if lte is not None:
            params["created[lte]"] = lte

        items = self._list_all(resource, params, limit)

        errors: List[str] = []
        data = self.flatten_all(items, flatten, errors)

        return SourceResult(
            data=data,
            source=self.name,
            metadata={"type": type, "row_count": len(data)},
            errors=errors,
        )

    def _list_all(self, resource: str, params: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
        """Page through a list endpoint with ``starting_after`` cursors."""
        items: List[Dict[str, Any]] = []
        url = f"{STRIPE_API_BASE}/{resource}"

        while len(items) < limit:
            if items:
                self.pause()
            response = self.session.get(
                url,
                params=params,
                timeout=self.export_config.http_timeout_seconds,
            )
            response.raise_for_status()
            body = response.json()
            page = body.get("data", [])
            items.extend(page)

            if not body.get("has_more") or not page:
                break
            params = {**params, "starting_after": page[-1]["id"]}

        logger.debug(f"Fetched {len(items)} Stripe {resource}")
        return items[:limit]
