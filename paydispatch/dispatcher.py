"""
Dispatcher — one pass over a chart of accounts.

For each account:
    1. resolve the provider via the RoutingTable
    2. build a PaymentRequest (amount / currency / description)
    3. call the provider adapter's charge()
    4. stamp the result with the account's index and code

Every account yields exactly one PaymentResult, and results[i] always
belongs to accounts[i] regardless of the order in which workers finish.
Failures of any kind are returned as data; dispatch() never raises for a
single account.

Known hazard: dispatch is NOT idempotent. Calling dispatch() twice with the
same accounts submits every payment twice. Likewise, an account whose
provider call was already in flight when the deadline passed is reported as
timed out, but the provider may still complete the payment.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional, Sequence

from paydispatch.errors import InvalidRequestError, RoutingError
from paydispatch.models import (
    DEADLINE_EXCEEDED,
    NO_MATCHING_PROVIDER,
    Account,
    ErrorType,
    PaymentRequest,
    PaymentResult,
)
from paydispatch.providers.base import BaseProviderAdapter
from paydispatch.routing import RoutingTable

log = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"


class Dispatcher:

    def __init__(
        self,
        routing: RoutingTable,
        adapters: Mapping[str, BaseProviderAdapter],
        provider_settings: Optional[Mapping[str, Mapping[str, Any]]] = None,
        default_currency: str = DEFAULT_CURRENCY,
        max_workers: int = 1,
        deadline_seconds: Optional[float] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        if deadline_seconds is not None and deadline_seconds <= 0:
            raise ValueError(f"deadline_seconds must be > 0, got {deadline_seconds}")
        self._routing           = routing
        self._adapters          = dict(adapters)
        self._provider_settings = dict(provider_settings or {})
        self._default_currency  = default_currency
        self._max_workers       = max_workers
        self._deadline          = deadline_seconds

    def dispatch(self, accounts: Sequence[Account]) -> list[PaymentResult]:
        """Process every account and return one PaymentResult per account, in input order."""
        accounts = list(accounts)
        log.info(
            "=== Dispatch starting: %d account(s), max_workers=%d, deadline=%s ===",
            len(accounts), self._max_workers,
            f"{self._deadline}s" if self._deadline else "none",
        )
        start = time.monotonic()

        if not accounts:
            results: list[PaymentResult] = []
        elif self._max_workers == 1 or len(accounts) == 1:
            results = self._dispatch_sequential(accounts)
        else:
            results = self._dispatch_concurrent(accounts)

        summary = summarize(results)
        log.info(
            "=== Dispatch complete in %.2fs | attempted=%d succeeded=%d failed=%d ===",
            time.monotonic() - start,
            summary["attempted"], summary["succeeded"], summary["failed"],
        )
        return results

    def close(self) -> None:
        """Release resources held by every adapter."""
        for adapter in {id(a): a for a in self._adapters.values()}.values():
            adapter.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _dispatch_sequential(self, accounts: list[Account]) -> list[PaymentResult]:
        deadline_at = time.monotonic() + self._deadline if self._deadline else None
        results: list[PaymentResult] = []
        for index, account in enumerate(accounts):
            if deadline_at is not None and time.monotonic() >= deadline_at:
                results.append(self._timed_out(index, account))
                continue
            results.append(self._dispatch_one(index, account))
        return results

    def _dispatch_concurrent(self, accounts: list[Account]) -> list[PaymentResult]:
        slots: list[Optional[PaymentResult]] = [None] * len(accounts)
        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(accounts)),
            thread_name_prefix="paydispatch",
        )
        try:
            future_to_index = {
                executor.submit(self._dispatch_one, index, account): index
                for index, account in enumerate(accounts)
            }
            try:
                for future in as_completed(future_to_index, timeout=self._deadline):
                    index = future_to_index[future]
                    try:
                        slots[index] = future.result()
                    except Exception as exc:
                        slots[index] = _internal_failure(index, accounts[index], exc)
            except FutureTimeoutError:
                pending = sum(1 for slot in slots if slot is None)
                log.error(
                    "Dispatch deadline of %ss exceeded — %d account(s) unfinished",
                    self._deadline, pending,
                )
                for future in future_to_index:
                    future.cancel()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return [
            slot if slot is not None else self._timed_out(index, accounts[index])
            for index, slot in enumerate(slots)
        ]

    def _dispatch_one(self, index: int, account: Account) -> PaymentResult:
        try:
            result = self._charge_account(account)
        except Exception as exc:
            return _internal_failure(index, account, exc)
        result.index        = index
        result.account_code = account.code
        return result

    def _charge_account(self, account: Account) -> PaymentResult:
        try:
            provider = self._route(account)
        except RoutingError as exc:
            log.warning("Account %s: %s", account.code, exc)
            return PaymentResult.failed("", str(exc), exc.error_type)

        try:
            request = build_request(
                account,
                provider,
                self._provider_settings.get(provider, {}),
                self._default_currency,
            )
        except InvalidRequestError as exc:
            log.warning("Account %s: %s", account.code, exc)
            return PaymentResult.failed(provider, str(exc), exc.error_type)

        return self._adapters[provider].charge(request)

    def _route(self, account: Account) -> str:
        provider = self._routing.resolve(account)
        if provider is None:
            raise RoutingError(NO_MATCHING_PROVIDER)
        if provider not in self._adapters:
            raise RoutingError(f"{NO_MATCHING_PROVIDER}: {provider!r} is not configured")
        return provider

    def _timed_out(self, index: int, account: Account) -> PaymentResult:
        try:
            provider = self._routing.resolve(account) or ""
        except Exception:
            log.exception("Account %s: routing failed while reporting timeout", account.code)
            provider = ""
        result = PaymentResult.failed(provider, DEADLINE_EXCEEDED, ErrorType.TIMEOUT)
        result.index        = index
        result.account_code = account.code
        return result


def build_request(
    account: Account,
    provider: str,
    provider_cfg: Mapping[str, Any],
    default_currency: str = DEFAULT_CURRENCY,
) -> PaymentRequest:
    """
    Build the PaymentRequest for one account.

    amount      — account metadata "amount" (unless null), else provider
                  "default_amount"
    currency    — account metadata "currency", else provider "currency",
                  else default_currency
    description — account metadata "description", else a generated one

    Raises InvalidRequestError when no usable amount or currency is found.
    """
    meta = account.metadata
    raw_amount = meta.get("amount")
    if raw_amount is None:
        raw_amount = provider_cfg.get("default_amount")
    if raw_amount is None:
        raise InvalidRequestError(
            f"no amount for account {account.code} (set 'amount' on the account "
            f"or 'default_amount' for provider {provider!r})"
        )

    currency    = meta.get("currency") or provider_cfg.get("currency") or default_currency
    description = meta.get("description") or f"{provider} payment for account {account.code}"

    try:
        return PaymentRequest(
            account_code=account.code,
            amount=_to_minor_units(raw_amount),
            currency=currency,
            description=str(description),
            metadata=meta,
        )
    except ValueError as exc:
        raise InvalidRequestError(f"invalid request for account {account.code}: {exc}") from exc


def summarize(results: Sequence[PaymentResult]) -> dict[str, Any]:
    """
    Return a stats dict for a dispatch run:
    {
        "attempted":     int,
        "succeeded":     int,
        "failed":        int,
        "by_provider":   { provider: {"succeeded": int, "failed": int} },
        "by_error_type": { error_type: int }
    }
    Accounts without a provider are counted under "unrouted".
    """
    by_provider:   dict[str, dict[str, int]] = {}
    by_error_type: dict[str, int]            = {}
    succeeded = 0

    for result in results:
        bucket = by_provider.setdefault(result.provider or "unrouted", {"succeeded": 0, "failed": 0})
        if result.success:
            succeeded += 1
            bucket["succeeded"] += 1
        else:
            bucket["failed"] += 1
            key = result.error_type or ErrorType.INTERNAL
            by_error_type[key] = by_error_type.get(key, 0) + 1

    return {
        "attempted":     len(results),
        "succeeded":     succeeded,
        "failed":        len(results) - succeeded,
        "by_provider":   by_provider,
        "by_error_type": by_error_type,
    }


def _to_minor_units(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"amount must be an integer in minor units, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"amount must be an integer in minor units, got {value!r}")


def _internal_failure(index: int, account: Account, exc: Exception) -> PaymentResult:
    log.error("Account %s: unexpected dispatch error: %s", account.code, exc, exc_info=exc)
    result = PaymentResult.failed("", f"unexpected {type(exc).__name__}: {exc}", ErrorType.INTERNAL)
    result.index        = index
    result.account_code = account.code
    return result
