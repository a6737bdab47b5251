from paydispatch.providers.base import BaseProviderAdapter
from paydispatch.providers.modern_treasury import ModernTreasuryAdapter
from paydispatch.providers.stripe_charges import StripeChargeAdapter
from paydispatch.providers.stub import StubAdapter

# Registry: provider name in settings.json / routing -> adapter class
PROVIDER_REGISTRY: dict[str, type[BaseProviderAdapter]] = {
    StubAdapter.name:           StubAdapter,
    StripeChargeAdapter.name:   StripeChargeAdapter,
    ModernTreasuryAdapter.name: ModernTreasuryAdapter,
}

__all__ = [
    "BaseProviderAdapter",
    "ModernTreasuryAdapter",
    "StripeChargeAdapter",
    "StubAdapter",
    "PROVIDER_REGISTRY",
]
