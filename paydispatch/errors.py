from paydispatch.models import ErrorType


class PaymentDispatchError(Exception):
    """Base class for every error raised inside paydispatch."""


class ConfigurationError(PaymentDispatchError):
    """
    Startup problem: unreadable settings or accounts file, unknown provider,
    missing credential. Raised before any account is processed.
    """


class RoutingError(PaymentDispatchError):
    """No provider is configured for an account."""

    error_type = ErrorType.ROUTING


class AdapterError(PaymentDispatchError):
    """Raised by an adapter's _submit(); turned into a failed PaymentResult by charge()."""

    error_type = ErrorType.INTERNAL


class TransportError(AdapterError):
    """The provider could not be reached (connection refused, timeout, DNS)."""

    error_type = ErrorType.TRANSPORT


class ProviderError(AdapterError):
    """The provider answered but rejected the request."""

    error_type = ErrorType.PROVIDER


class InvalidRequestError(AdapterError):
    """The request is missing something the provider needs; nothing was sent."""

    error_type = ErrorType.INVALID_REQUEST
