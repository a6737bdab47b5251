"""
Settings loading and startup validation.

Everything that can make a run impossible is checked here, before any
account is processed: unreadable settings, routing to unknown or disabled
providers, missing credentials, bad worker / deadline values. Problems are
raised as ConfigurationError.

Credentials are read once per run from the environment variable named by
providers.<name>.api_key_env and handed to the adapter constructor.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from paydispatch.dispatcher import DEFAULT_CURRENCY, Dispatcher
from paydispatch.errors import ConfigurationError
from paydispatch.providers import PROVIDER_REGISTRY, BaseProviderAdapter, StubAdapter
from paydispatch.routing import RoutingTable

log = logging.getLogger(__name__)

DEFAULT_KEY_ENV: dict[str, str] = {
    "stripe":          "STRIPE_API_KEY",
    "modern_treasury": "MODERN_TREASURY_API_KEY",
}


def load_settings(config_path: Union[str, Path]) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            settings = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Could not parse config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Could not read config file {path}: {exc}") from exc
    if not isinstance(settings, dict):
        raise ConfigurationError(f"Config file {path} must hold a JSON object")
    return settings


def _section(cfg: Mapping[str, Any], key: str, where: str) -> Mapping[str, Any]:
    """Return cfg[key] as a mapping; a missing or null entry is an empty one."""
    value = cfg.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(
            f"{where}.{key} must be a mapping, got {type(value).__name__}"
        )
    return value


def _provider_settings(settings: Mapping[str, Any]) -> dict[str, Mapping[str, Any]]:
    providers_cfg = _section(settings, "providers", "settings")
    return {name: _section(providers_cfg, name, "providers") for name in providers_cfg}


def build_adapters(
    settings: Mapping[str, Any],
    routing: RoutingTable,
    dry_run: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, BaseProviderAdapter]:
    """
    Instantiate one adapter per provider the routing table can reach.

    With dry_run=True every routed provider is backed by a StubAdapter and
    no credentials are required.
    """
    environ       = os.environ if environ is None else environ
    providers_cfg = _provider_settings(settings)

    routed  = sorted(routing.providers())
    unknown = [name for name in routed if name not in PROVIDER_REGISTRY]
    if unknown:
        raise ConfigurationError(
            f"Routing refers to unknown provider(s) {unknown}. Available: {list(PROVIDER_REGISTRY)}"
        )
    disabled = [name for name in routed if not providers_cfg.get(name, {}).get("enabled", True)]
    if disabled:
        raise ConfigurationError(f"Routing refers to disabled provider(s) {disabled}")

    if dry_run:
        stub = StubAdapter(providers_cfg.get("stub", {}))
        log.info("Dry run — routing %s to the stub adapter", routed)
        return {name: stub for name in routed}

    secrets: dict[str, Optional[str]] = {}
    missing: list[str] = []
    for name in routed:
        adapter_cls = PROVIDER_REGISTRY[name]
        if not adapter_cls.requires_secret:
            secrets[name] = None
            continue
        key_env = providers_cfg.get(name, {}).get("api_key_env") or DEFAULT_KEY_ENV.get(
            name, f"{name.upper()}_API_KEY"
        )
        secret = environ.get(key_env)
        if not secret:
            missing.append(key_env)
        secrets[name] = secret

    if missing:
        raise ConfigurationError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    adapters: dict[str, BaseProviderAdapter] = {}
    for name in routed:
        adapters[name] = PROVIDER_REGISTRY[name](providers_cfg.get(name, {}), secrets[name])
        log.debug("Provider %s initialised", name)
    return adapters


def build_dispatcher(
    settings: Mapping[str, Any],
    dry_run: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> Dispatcher:
    """Validate settings and return a ready Dispatcher."""
    routing_cfg = settings.get("routing")
    if not isinstance(routing_cfg, Mapping):
        raise ConfigurationError("settings.routing must be a mapping")
    routing = RoutingTable.from_config(routing_cfg)
    if not routing.providers():
        raise ConfigurationError("settings.routing does not route to any provider")

    dispatch_cfg     = _section(settings, "dispatch", "settings")
    provider_cfgs    = _provider_settings(settings)
    max_workers      = dispatch_cfg.get("max_workers", 1)
    deadline_seconds = dispatch_cfg.get("deadline_seconds")

    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        raise ConfigurationError(f"dispatch.max_workers must be an integer >= 1, got {max_workers!r}")
    if deadline_seconds is not None and (
        isinstance(deadline_seconds, bool)
        or not isinstance(deadline_seconds, (int, float))
        or deadline_seconds <= 0
    ):
        raise ConfigurationError(
            f"dispatch.deadline_seconds must be a positive number, got {deadline_seconds!r}"
        )

    adapters = build_adapters(settings, routing, dry_run=dry_run, environ=environ)
    return Dispatcher(
        routing=routing,
        adapters=adapters,
        provider_settings=provider_cfgs,
        default_currency=settings.get("currency", DEFAULT_CURRENCY),
        max_workers=max_workers,
        deadline_seconds=deadline_seconds,
    )
