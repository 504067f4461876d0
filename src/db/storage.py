"""
Persistence adapter over the local key-value store and the optional remote service.

Local is authoritative whenever the remote is unavailable; the two are never
reconciled. Remote failures stop here: they are logged and, for writes,
reported through ``notify``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from db import database
from db.remote import RemoteClient, RemoteError
from utils.logger import get_logger

_logger = get_logger(__name__)

COLLECTIONS = ("products", "orders", "customers", "salespersons")
AUTH_KEY = "auth"

MIRROR_FAILED_MSG = "Remote sync failed, changes are saved locally."


@dataclass(frozen=True)
class RemoteCall:
    """The remote request that mirrors a local write."""

    method: str
    endpoint: str
    body: Optional[Any] = None


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection!r}")


class PersistenceAdapter:
    def __init__(
        self,
        remote: Optional[RemoteClient] = None,
        notify: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.remote = remote
        self.notify = notify

    @property
    def token(self) -> Optional[str]:
        return self.remote.token if self.remote else None

    @token.setter
    def token(self, value: Optional[str]) -> None:
        if self.remote:
            self.remote.token = value

    # ---------------------------
    # Collections
    # ---------------------------

    async def load(self, collection: str) -> List[Dict[str, Any]]:
        """Remote list if it answers with one, else the local copy, else []."""
        _check_collection(collection)
        if self.remote:
            try:
                data = await self.remote.get(f"/{collection}")
            except RemoteError as e:
                _logger.warning(f"Loading {collection} from remote failed: {e}")
            else:
                if isinstance(data, list):
                    return data
                _logger.debug(f"No remote data for {collection}, using local store")
        return await self.load_local(collection)

    async def load_local(self, collection: str) -> List[Dict[str, Any]]:
        _check_collection(collection)
        raw = await database.read_key(collection)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            _logger.error(f"Stored {collection} is not valid JSON, ignoring it: {e}")
            return []
        if not isinstance(data, list):
            _logger.error(f"Stored {collection} is not a list, ignoring it")
            return []
        return data

    async def save(
        self,
        collection: str,
        records: Sequence[Dict[str, Any]],
        mirror: Optional[RemoteCall] = None,
    ) -> None:
        """Write the whole collection locally, then mirror to the remote best-effort."""
        _check_collection(collection)
        await database.write_key(collection, json.dumps(list(records), ensure_ascii=False))
        if mirror is not None:
            await self.mirror(mirror)

    async def mirror(self, call: RemoteCall) -> bool:
        """Perform ``call`` against the remote. Never raises; True if it went through."""
        if not self.remote:
            return False
        try:
            result = await self.remote.request(call.method, call.endpoint, call.body)
        except RemoteError as e:
            _logger.warning(f"Mirroring {call.method} {call.endpoint} failed: {e}")
            self._notify(MIRROR_FAILED_MSG)
            return False
        if result is None:
            # non-2xx; the local write already happened
            _logger.warning(f"Mirroring {call.method} {call.endpoint} was refused")
            self._notify(MIRROR_FAILED_MSG)
            return False
        return True

    def _notify(self, message: str) -> None:
        if self.notify is not None:
            self.notify(message)

    # ---------------------------
    # Session record
    # ---------------------------

    async def load_session(self) -> Optional[Dict[str, Any]]:
        raw = await database.read_key(AUTH_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            _logger.error(f"Stored session is not valid JSON, ignoring it: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def save_session(self, record: Dict[str, Any]) -> None:
        await database.write_key(AUTH_KEY, json.dumps(record, ensure_ascii=False))

    async def clear_session(self) -> None:
        await database.delete_key(AUTH_KEY)
