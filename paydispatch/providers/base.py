import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from paydispatch.errors import AdapterError, ConfigurationError
from paydispatch.models import ErrorType, PaymentRequest, PaymentResult

log = logging.getLogger(__name__)


class BaseProviderAdapter(ABC):
    """
    Abstract interface for external payment provider adapters.

    Concrete adapters translate a provider-neutral PaymentRequest into one
    provider's call shape (see _submit) and return the provider payload.
    charge() wraps _submit() and normalises every outcome into a
    PaymentResult; no exception crosses the adapter boundary.

    Credentials are injected by the caller (see paydispatch.config); adapters
    never read the environment themselves.

    Attributes
    ----------
    name : str
        Class-level identifier used in settings.json and PROVIDER_REGISTRY.
    requires_secret : bool
        When True, construction without a secret raises ConfigurationError.
    """

    name: str = ""
    requires_secret: bool = True

    def __init__(self, config: dict[str, Any], secret: Optional[str] = None) -> None:
        if self.requires_secret and not secret:
            raise ConfigurationError(f"[{self.name}] no API credential supplied")
        self._config = config
        self._secret = secret

    def charge(self, request: PaymentRequest) -> PaymentResult:
        """
        Submit request to the provider and return a normalised result.

        Transport faults, provider rejections, invalid requests and any
        unexpected exception all produce success=False with a readable error.
        """
        start = time.monotonic()
        try:
            payload = self._submit(request)
        except AdapterError as exc:
            result = PaymentResult.failed(self.name, str(exc), exc.error_type)
            log.warning(
                "[%s] account=%s %s failure: %s",
                self.name, request.account_code, exc.error_type, exc,
            )
        except Exception as exc:
            result = PaymentResult.failed(
                self.name, f"unexpected {type(exc).__name__}: {exc}", ErrorType.INTERNAL
            )
            log.exception("[%s] account=%s unexpected error", self.name, request.account_code)
        else:
            result = PaymentResult.ok(self.name, payload)
            log.info(
                "[%s] account=%s charged %d %s",
                self.name, request.account_code, request.amount, request.currency,
            )

        result.account_code = request.account_code
        result.elapsed_secs = time.monotonic() - start
        return result

    def close(self) -> None:
        """Release any connection resources held by the adapter."""

    @abstractmethod
    def _submit(self, request: PaymentRequest) -> dict[str, Any]:
        """
        Perform the provider call and return its response payload verbatim.

        Raise TransportError when the provider cannot be reached,
        ProviderError when it rejects the request, and InvalidRequestError
        when the request lacks a field the provider needs.
        """
