import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


# Document type keys used in step configs, mapped to the stored document types
DOCUMENT_TYPE_ALIASES: Dict[str, list] = {
    "bank_statement": ["bank_statement", "statement"],
    "firc": ["firc", "foreign_inward_remittance"],
    "invoices": ["invoice", "receipt"],
    "gst_returns": ["gst_return", "gstr"],
    "tds_certificates": ["tds_certificate", "form_16"],
    "rent_agreements": ["rent_agreement", "lease"],
}


def default_reference_data() -> Dict[str, Any]:
    return {"document_types": DOCUMENT_TYPE_ALIASES}


class ReferenceDataCache:
    """
    Lookup data shared by step handlers (document type aliases and similar).

    Built once per process and handed to handlers through ``StepServices``.
    Data is reloaded from ``loader`` on first use and whenever it is older
    than ``ttl_seconds``.
    """

    def __init__(
        self,
        loader: Callable[[], Dict[str, Any]] = default_reference_data,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: Dict[str, Any] = {}
        self._loaded_at: Optional[float] = None
        self._lock = threading.Lock()

    def stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at >= self.ttl_seconds

    def refresh(self) -> None:
        data = dict(self._loader() or {})
        with self._lock:
            self._data = data
            self._loaded_at = self._clock()
        logger.debug(f"Reference data cache refreshed ({len(data)} keys)")

    def get(self, key: str, default: Any = None) -> Any:
        if self.stale():
            self.refresh()
        with self._lock:
            return self._data.get(key, default)
