import threading
from typing import Any, Callable, Optional

import pytest

from paydispatch.models import Account, PaymentRequest
from paydispatch.providers.base import BaseProviderAdapter
from paydispatch.routing import RoutingTable


class RecordingAdapter(BaseProviderAdapter):
    """Test adapter: records every request, replies via an optional behaviour callable."""

    requires_secret = False

    def __init__(
        self,
        name: str,
        behaviour: Optional[Callable[[PaymentRequest], dict[str, Any]]] = None,
    ) -> None:
        super().__init__({})
        self.name      = name
        self.requests: list[PaymentRequest] = []
        self.closed    = False
        self._behaviour = behaviour
        self._lock     = threading.Lock()

    def _submit(self, request: PaymentRequest) -> dict[str, Any]:
        with self._lock:
            self.requests.append(request)
        if self._behaviour is not None:
            return self._behaviour(request)
        return {"id": f"{self.name}_{len(self.requests)}", "status": "succeeded"}

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def routing() -> RoutingTable:
    return RoutingTable(codes={"1000": "stripe", "2000": "modern_treasury"})


@pytest.fixture
def stripe_adapter() -> RecordingAdapter:
    return RecordingAdapter("stripe")


@pytest.fixture
def mt_adapter() -> RecordingAdapter:
    return RecordingAdapter("modern_treasury")


@pytest.fixture
def three_accounts() -> list[Account]:
    return [
        Account("1000", {"amount": 2000, "source": "tok_visa"}),
        Account("2000", {"amount": 5000}),
        Account("3000", {"amount": 100}),
    ]
