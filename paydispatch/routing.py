import logging
from typing import Any, Mapping, Optional

from paydispatch.errors import ConfigurationError
from paydispatch.models import Account

log = logging.getLogger(__name__)


class RoutingTable:
    """
    Maps accounts to provider names.

    Resolution order for an account:
        1. exact match on account code        (routing.codes)
        2. match on metadata["category"]      (routing.categories)
        3. routing.default, if set

    Example settings.json fragment:
        "routing": {
            "codes":      {"1000": "stripe", "2000": "modern_treasury"},
            "categories": {"payables": "modern_treasury"},
            "default":    null
        }
    """

    def __init__(
        self,
        codes: Optional[Mapping[str, str]] = None,
        categories: Optional[Mapping[str, str]] = None,
        default: Optional[str] = None,
    ) -> None:
        self._codes      = {str(k): v for k, v in (codes or {}).items()}
        self._categories = {str(k): v for k, v in (categories or {}).items()}
        self._default    = default or None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RoutingTable":
        for key in ("codes", "categories"):
            section = config.get(key, {}) or {}
            if not isinstance(section, Mapping):
                raise ConfigurationError(
                    f"routing.{key} must be a mapping, got {type(section).__name__}"
                )
            for match, provider in section.items():
                if not isinstance(provider, str) or not provider:
                    raise ConfigurationError(
                        f"routing.{key}[{match!r}] must name a provider, got {provider!r}"
                    )
        return cls(
            codes=config.get("codes"),
            categories=config.get("categories"),
            default=config.get("default"),
        )

    def resolve(self, account: Account) -> Optional[str]:
        """Return the provider name for account, or None if nothing matches."""
        provider = self._codes.get(account.code)
        if provider is not None:
            return provider

        category = account.category
        if category is not None and category in self._categories:
            return self._categories[category]

        if self._default is None:
            log.debug("No route for account %s (category=%s)", account.code, category)
        return self._default

    def providers(self) -> set[str]:
        """Every provider name the table can route to."""
        names = set(self._codes.values()) | set(self._categories.values())
        if self._default:
            names.add(self._default)
        return names
