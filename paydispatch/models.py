from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional


# ---------------------------------------------------------------------------
# Error types carried on failed PaymentResults
#
# transport       — provider could not be reached (connection, timeout)
# provider        — provider answered but rejected the request (decline,
#                   HTTP >= 400, malformed success body)
# routing         — no provider is configured for the account
# invalid_request — request could not be built (missing amount / source)
# timeout         — dispatch deadline passed before the account was handled
# internal        — unexpected exception inside the dispatch of one account
# ---------------------------------------------------------------------------

class ErrorType:
    TRANSPORT       = "transport"
    PROVIDER        = "provider"
    ROUTING         = "routing"
    INVALID_REQUEST = "invalid_request"
    TIMEOUT         = "timeout"
    INTERNAL        = "internal"

    ALL: frozenset[str] = frozenset(
        {TRANSPORT, PROVIDER, ROUTING, INVALID_REQUEST, TIMEOUT, INTERNAL}
    )


NO_MATCHING_PROVIDER = "no matching provider"
DEADLINE_EXCEEDED    = "dispatch deadline exceeded"


def _freeze(metadata: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True)
class Account:
    """
    One chart-of-accounts record.

    code     — account code used by the routing table (e.g. "1000").
    metadata — everything else from the source record. Keys read by the
               dispatcher: category, amount, currency, description, source.

    Accounts are read-only for the whole run; metadata is stored as a
    read-only mapping. Accounts hash on their code.
    """
    code:     str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @property
    def category(self) -> Optional[str]:
        value = self.metadata.get("category")
        return str(value) if value is not None else None

    def __hash__(self) -> int:
        return hash(self.code)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, **dict(self.metadata)}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Account:
        data = dict(d)
        code = data.pop("code")
        return cls(code=str(code), metadata=data)


@dataclass(frozen=True)
class PaymentRequest:
    """
    Provider-neutral payment instruction built for a single account.

    amount   — integer amount in minor currency units (e.g. pence, cents).
    currency — ISO 4217 code, upper case.
    metadata — the originating account's metadata, for adapters that need
               extra fields (e.g. the Stripe funding source).
    """
    account_code: str
    amount:       int
    currency:     str
    description:  str
    metadata:     Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"amount must be an integer in minor units, got {self.amount!r}")
        if self.amount <= 0:
            raise ValueError(f"amount must be positive, got {self.amount}")
        currency = str(self.currency or "").strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValueError(f"currency must be a 3-letter ISO 4217 code, got {self.currency!r}")
        object.__setattr__(self, "currency", currency)
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_code": self.account_code,
            "amount":       self.amount,
            "currency":     self.currency,
            "description":  self.description,
        }


@dataclass
class PaymentResult:
    """
    Normalised outcome of one account's dispatch, identical in shape for
    every provider.

    success      — True only if the call was transmitted AND the provider
                   reported no error.
    provider     — name of the adapter that handled the account ("" when
                   no provider matched).
    raw_response — provider payload verbatim on success, None on failure.
    error        — human-readable failure message (None on success).
    error_type   — one of the ErrorType constants (None on success).
    account_code — code of the originating account.
    index        — position of the originating account in the dispatch input.
    elapsed_secs — wall time spent in the adapter call.
    """
    success:      bool
    provider:     str
    raw_response: Optional[dict[str, Any]] = None
    error:        Optional[str]            = None
    error_type:   Optional[str]            = None
    account_code: Optional[str]            = None
    index:        Optional[int]            = None
    elapsed_secs: float                    = 0.0

    @classmethod
    def ok(cls, provider: str, raw_response: dict[str, Any]) -> PaymentResult:
        return cls(success=True, provider=provider, raw_response=raw_response)

    @classmethod
    def failed(cls, provider: str, error: str, error_type: str) -> PaymentResult:
        return cls(success=False, provider=provider, error=error, error_type=error_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index":        self.index,
            "account_code": self.account_code,
            "provider":     self.provider,
            "success":      self.success,
            "error":        self.error,
            "error_type":   self.error_type,
            "elapsed_secs": round(self.elapsed_secs, 4),
            "raw_response": self.raw_response,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PaymentResult:
        error_type = d.get("error_type")
        if error_type is not None and error_type not in ErrorType.ALL:
            raise ValueError(f"unknown error_type {error_type!r}")
        return cls(
            success=d["success"],
            provider=d["provider"],
            raw_response=d.get("raw_response"),
            error=d.get("error"),
            error_type=error_type,
            account_code=d.get("account_code"),
            index=d.get("index"),
            elapsed_secs=d.get("elapsed_secs", 0.0),
        )
