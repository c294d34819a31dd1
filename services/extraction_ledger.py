# --- START OF FILE services/extraction_ledger.py ---
import threading
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from tools.logger import log_info
from services.artifact_models import LedgerEntry, ServiceCounters

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return sign + "".join(reversed(digits))


def content_fingerprint(content: str) -> str:
    """
    Fast 32-bit rolling hash (h = h*31 + code point), signed, rendered in base 36.
    Advisory duplicate detection only, not an integrity check.
    """
    h = 0
    for ch in content:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return _to_base36(h)


class ExtractionLedger:
    """
    In-memory (path, content hash) ledger plus the process counters.
    Never evicts; lives as long as the owning pipeline.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], LedgerEntry] = {}
        self._counters = ServiceCounters()

    def record(self, relative_path: str, content_hash: str) -> bool:
        """Adds or refreshes the entry. Returns True if the pair had been recorded before."""
        key = (relative_path, content_hash)
        now = datetime.now(timezone.utc)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_seen_at = now
                entry.times_seen += 1
                return True
            self._entries[key] = LedgerEntry(
                relative_path=relative_path, content_hash=content_hash,
                first_seen_at=now, last_seen_at=now,
            )
            return False

    def has_been_processed(self, relative_path: str, content_hash: str) -> bool:
        with self._lock:
            return (relative_path, content_hash) in self._entries

    def get_entry(self, relative_path: str, content_hash: str) -> LedgerEntry | None:
        with self._lock:
            entry = self._entries.get((relative_path, content_hash))
            return entry.model_copy() if entry else None

    def entries(self) -> List[LedgerEntry]:
        with self._lock:
            return [entry.model_copy() for entry in self._entries.values()]

    def count_attempt(self, success: bool):
        with self._lock:
            self._counters.total_processed += 1
            if success:
                self._counters.successful_extractions += 1
            else:
                self._counters.failed_extractions += 1

    def stats(self) -> ServiceCounters:
        with self._lock:
            return self._counters.model_copy()

    def clear_entries(self) -> int:
        """Drops all (path, hash) entries but keeps the counters."""
        with self._lock:
            entries_dropped = len(self._entries)
            self._entries.clear()
        return entries_dropped

    def reset(self):
        """Operator reset: entries and counters."""
        entries_dropped = self.clear_entries()
        with self._lock:
            self._counters = ServiceCounters()
        log_info("extraction_ledger", "reset", f"Ledger reset ({entries_dropped} entries dropped).")

# --- END OF FILE services/extraction_ledger.py ---
