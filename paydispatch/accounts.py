import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml

from paydispatch.errors import ConfigurationError
from paydispatch.models import Account

log = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


def load_accounts(path: Union[str, Path]) -> list[Account]:
    """
    Load a chart of accounts from a JSON or YAML file.

    The file holds either a list of records or {"accounts": [...]}. Each
    record needs a non-empty "code"; all other keys become metadata.
    Order is preserved.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Accounts file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in _YAML_SUFFIXES:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse accounts file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Could not read accounts file {path}: {exc}") from exc

    accounts = parse_accounts(data, source=str(path))
    log.info("Loaded %d account(s) from %s", len(accounts), path)
    return accounts


def parse_accounts(data: Any, source: str = "<data>") -> list[Account]:
    if isinstance(data, dict):
        data = data.get("accounts")
    if not isinstance(data, list):
        raise ConfigurationError(
            f"{source}: expected a list of accounts, got {type(data).__name__}"
        )

    accounts: list[Account] = []
    for i, record in enumerate(data):
        if not isinstance(record, dict):
            raise ConfigurationError(
                f"{source}: account #{i} must be a mapping, got {type(record).__name__}"
            )
        code = record.get("code")
        if code is None or isinstance(code, bool) or str(code).strip() == "":
            raise ConfigurationError(f"{source}: account #{i} has no code")
        accounts.append(Account.from_dict({**record, "code": str(code).strip()}))
    return accounts
