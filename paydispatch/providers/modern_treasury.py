"""
Modern Treasury adapter ("payment-order provider").

Auth: Bearer token.
API:  Modern Treasury REST — POST /api/payment_orders.

Config (settings.json providers.modern_treasury)
------------------------------------------------
  api_key_env      — env var holding the bearer token
                     (default: MODERN_TREASURY_API_KEY)
  url              — endpoint override (default: the production endpoint)
  timeout_seconds  — per-call timeout (default: 15)
  default_amount   — amount in minor units when the account has none
  currency         — default currency for accounts routed here

Request body
------------
  {"amount": <minor units>, "currency": "<ISO 4217>", "description": "..."}

Error mapping
-------------
  requests.Timeout / ConnectionError / RequestException → TransportError
  HTTP status outside 2xx (incl. every status >= 400)   → ProviderError
  2xx with a non-JSON body                              → ProviderError
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from paydispatch.errors import ProviderError, TransportError
from paydispatch.models import PaymentRequest
from paydispatch.providers.base import BaseProviderAdapter

log = logging.getLogger(__name__)

PAYMENT_ORDERS_URL = "https://app.moderntreasury.com/api/payment_orders"
_DEFAULT_TIMEOUT   = 15
_BODY_EXCERPT      = 200


class ModernTreasuryAdapter(BaseProviderAdapter):

    name = "modern_treasury"

    def __init__(self, config: dict[str, Any], secret: Optional[str] = None) -> None:
        super().__init__(config, secret)
        self._url     = config.get("url") or PAYMENT_ORDERS_URL
        self._timeout = config.get("timeout_seconds", _DEFAULT_TIMEOUT)
        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {secret}",
            "Content-Type":  "application/json",
            "Accept":        "application/json",
        })

    def _submit(self, request: PaymentRequest) -> dict[str, Any]:
        payload = {
            "amount":      request.amount,
            "currency":    request.currency,
            "description": request.description,
        }
        try:
            resp = self._session.post(self._url, json=payload, timeout=self._timeout)
        except requests.Timeout as exc:
            raise TransportError(
                f"[modern_treasury] timed out after {self._timeout}s: {exc}"
            ) from exc
        except requests.ConnectionError as exc:
            raise TransportError(f"[modern_treasury] connection error: {exc}") from exc
        except requests.RequestException as exc:
            raise TransportError(f"[modern_treasury] request failed: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            body = (resp.text or "").strip()[:_BODY_EXCERPT]
            raise ProviderError(
                f"[modern_treasury] HTTP {resp.status_code} {resp.reason or ''}".rstrip()
                + (f": {body}" if body else "")
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(
                f"[modern_treasury] HTTP {resp.status_code} with non-JSON body"
            ) from exc

        if not isinstance(data, dict):
            raise ProviderError(
                f"[modern_treasury] expected a JSON object, got {type(data).__name__}"
            )

        log.debug(
            "[modern_treasury] payment_order_id=%s status=%s", data.get("id"), data.get("status")
        )
        return data

    def close(self) -> None:
        self._session.close()
