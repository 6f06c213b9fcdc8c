"""Persisted history of LAN addresses that devices were reached at."""

import json
import logging
import os
import time
from pathlib import Path
from typing import Iterable

from config import ADDRESS_BLACKLIST, RECORD_PREFIX, STORAGE_FILE, STORAGE_KEY
from connection.models import AddressRecord

logger = logging.getLogger(__name__)


def strip_prefix(address: str) -> str:
    idx = address.rfind(RECORD_PREFIX)
    return address if idx < 0 else address[idx + len(RECORD_PREFIX):]


def _ip_of(raw: str) -> str:
    return raw.split("|", 1)[0]


class AddressHistoryStore:
    """
    Ordered, deduplicated list of ``ip|timestampMillis`` strings kept under a
    single key of a JSON state file.  Most recent first.
    """

    def __init__(self, path: Path = STORAGE_FILE, key: str = STORAGE_KEY) -> None:
        self._path = Path(path)
        self._key = key

    def _load_state(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load address history: {e}")
            return {}

    def _load(self) -> list[str]:
        return [str(item) for item in self._load_state().get(self._key, [])]

    def _save(self, entries: list[str]) -> None:
        state = self._load_state()
        state[self._key] = entries
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(state, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)

    def raw(self) -> list[str]:
        """Stored strings, without the display prefix."""
        return self._load()

    def records(self) -> list[AddressRecord]:
        """All records, most recent first.  Blacklisted leftovers are purged."""
        entries = self._load()
        kept = [e for e in entries if _ip_of(strip_prefix(e)) not in ADDRESS_BLACKLIST]
        if len(kept) != len(entries):
            self.replace(kept)
        return [AddressRecord.parse(strip_prefix(e)) for e in kept]

    def labels(self) -> list[str]:
        return [record.label for record in self.records()]

    def replace(self, addresses: Iterable[str]) -> None:
        """Persist ``addresses`` (prefixed or bare), deduplicated by ip, first occurrence wins."""
        seen: set[str] = set()
        entries: list[str] = []
        for address in addresses:
            entry = strip_prefix(address).strip()
            ip = _ip_of(entry)
            if not ip or ip in ADDRESS_BLACKLIST or ip in seen:
                continue
            seen.add(ip)
            entries.append(entry)
        self._save(entries)

    def record_attach(self, ip: str) -> None:
        """Move ``ip`` to the front with a fresh timestamp, or add it."""
        entries = self._load()
        fresh = AddressRecord(ip=ip, last_seen_at=int(time.time() * 1000)).serialize()

        for i, entry in enumerate(entries):
            if _ip_of(strip_prefix(entry)) == ip:
                del entries[i]
                entries.insert(0, fresh)
                self.replace(entries)
                logger.debug(f"Relocated address record {ip}")
                return

        if ip in ADDRESS_BLACKLIST:
            return
        entries.insert(0, fresh)
        self.replace(entries)
        logger.debug(f"Added address record {ip}")

    def clear(self) -> int:
        """Remove every record and return how many there were."""
        total = len(self._load())
        self._save([])
        logger.info(f"Cleared {total} address record(s)")
        return total
