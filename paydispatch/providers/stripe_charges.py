"""
Stripe charge adapter ("charge provider").

Auth: secret API key, held by a per-adapter stripe.StripeClient (never set on
      the stripe module).
API:  Stripe Charges API via the official `stripe` library.

Config (settings.json providers.stripe)
---------------------------------------
  api_key_env     — env var holding the secret key (default: STRIPE_API_KEY)
  timeout_seconds — per-call HTTP timeout (default: 30)
  default_source  — funding source used when the account has none
                    (e.g. "tok_visa" in test mode)
  default_amount  — amount in minor units when the account has none
  currency        — default currency for accounts routed here

Request field mapping
---------------------
  request.amount                → amount (minor units, unchanged)
  request.currency              → currency (lower case)
  request.description           → description
  request.metadata["source"]    → source (falls back to default_source)
  request.account_code          → metadata.account_code

Error mapping
-------------
  stripe.APIConnectionError     → TransportError
  stripe.CardError              → ProviderError (decline reason + code)
  other stripe.StripeError      → ProviderError
  charge.status == "failed"     → ProviderError (failure_message)
  no funding source             → InvalidRequestError
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import stripe

from paydispatch.errors import InvalidRequestError, ProviderError, TransportError
from paydispatch.models import PaymentRequest
from paydispatch.providers.base import BaseProviderAdapter

log = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


class StripeChargeAdapter(BaseProviderAdapter):

    name = "stripe"

    def __init__(self, config: dict[str, Any], secret: Optional[str] = None) -> None:
        super().__init__(config, secret)
        self._default_source: Optional[str] = config.get("default_source") or None
        self._timeout = config.get("timeout_seconds", _DEFAULT_TIMEOUT)
        self._client = stripe.StripeClient(
            secret,
            http_client=stripe.RequestsClient(timeout=self._timeout),
        )
        # newer releases namespace the v1 services under client.v1
        self._charges = getattr(self._client, "v1", self._client).charges

    def _submit(self, request: PaymentRequest) -> dict[str, Any]:
        source = request.metadata.get("source") or self._default_source
        if not source:
            raise InvalidRequestError(
                f"[stripe] no funding source for account {request.account_code}"
            )

        try:
            charge = self._charges.create(params={
                "amount":      request.amount,
                "currency":    request.currency.lower(),
                "source":      source,
                "description": request.description,
                "metadata":    {"account_code": request.account_code},
            })
        except stripe.CardError as exc:
            reason = exc.user_message or str(exc)
            code   = f" ({exc.code})" if exc.code else ""
            raise ProviderError(f"[stripe] card declined{code}: {reason}") from exc
        except stripe.APIConnectionError as exc:
            raise TransportError(f"[stripe] connection error: {exc}") from exc
        except stripe.StripeError as exc:
            raise ProviderError(f"[stripe] {type(exc).__name__}: {exc}") from exc

        payload = _as_dict(charge)
        if payload.get("status") == "failed":
            message = payload.get("failure_message") or "charge failed"
            raise ProviderError(f"[stripe] charge {payload.get('id', '')} failed: {message}")

        log.debug("[stripe] charge_id=%s status=%s", payload.get("id"), payload.get("status"))
        return payload


def _as_dict(charge: Any) -> dict[str, Any]:
    """Return a Stripe object as a plain (recursive) dict."""
    to_dict = getattr(charge, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(charge)
