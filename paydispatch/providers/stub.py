from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from paydispatch.models import PaymentRequest
from paydispatch.providers.base import BaseProviderAdapter

log = logging.getLogger(__name__)


class StubAdapter(BaseProviderAdapter):
    """
    Dry-run provider adapter — logs every call, returns a plausible payload.

    No credentials required; no external call is made. Used by --dry-run to
    exercise routing and request building before pointing at live providers.
    """

    name = "stub"
    requires_secret = False

    def _submit(self, request: PaymentRequest) -> dict[str, Any]:
        payment_id = f"stub_{uuid.uuid4().hex[:16]}"
        log.info(
            "[stub] CHARGE account=%s amount=%d %s | %s",
            request.account_code, request.amount, request.currency, request.description,
        )
        return {
            "id":          payment_id,
            "object":      "stub_payment",
            "status":      "succeeded",
            "amount":      request.amount,
            "currency":    request.currency,
            "description": request.description,
            "created_at":  datetime.now(timezone.utc).isoformat(),
        }
