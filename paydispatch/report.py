import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence, Union

import filelock

from paydispatch.models import PaymentResult

log = logging.getLogger(__name__)

# How long to wait for the report lock before giving up (seconds)
_LOCK_TIMEOUT = 10


class ResultReport:
    """
    Writes the outcome of a dispatch run to a JSON file:

        {
          "generated_at": "<UTC ISO 8601>",
          "summary":      { ...summarize() stats... },
          "results":      [ PaymentResult.to_dict(), ... ]   # input order
        }

    The provider payloads (raw_response) are kept verbatim so the file can
    be used for reconciliation. Writes are serialised with a filelock on
    "<path>.lock"; a lock timeout or I/O error is logged, not raised.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path      = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    def write(self, results: Sequence[PaymentResult], summary: dict[str, Any]) -> bool:
        """Write the report. Returns True on success."""
        document = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "summary":      summary,
            "results":      [r.to_dict() for r in results],
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with filelock.FileLock(str(self._lock_path), timeout=_LOCK_TIMEOUT):
                with open(self._path, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False, default=str)
        except filelock.Timeout:
            log.error("Lock timeout writing report %s — report not written", self._path)
            return False
        except OSError as exc:
            log.error("Could not write report %s: %s", self._path, exc)
            return False

        log.info("Wrote %d result(s) to %s", len(results), self._path)
        return True
