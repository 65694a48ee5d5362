# shopmate/reconciler.py
"""Client-side catalog snapshot cache; unchanged products keep their cached objects."""
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from shopmate.config import SCHEMA_VERSION
from shopmate.models import CatalogSnapshot, Collection, IndexEntry, Presets, Product

logger = logging.getLogger(__name__)


def _utf16_units(text: str) -> Iterable[int]:
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    sign, n = ("-", -n) if n < 0 else ("", n)
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(digits[r])
    return sign + "".join(reversed(out))


def fast_hash(product: Product) -> str:
    """Coarse fingerprint over id, title, updated_at and the variant count.

    Only meant to spot likely-unchanged records that carry no timestamp; it is
    not collision resistant.
    """
    fields = {"id": product.id, "title": product.title, "updated_at": product.updated_at, "v": len(product.variants)}
    text = json.dumps({k: v for k, v in fields.items() if v is not None}, separators=(",", ":"), ensure_ascii=False)
    h = 0
    for unit in _utf16_units(text):
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _base36(h)


def build_product_index(products: Iterable[Product]) -> List[IndexEntry]:
    # hash only when there is no timestamp to compare
    return [
        IndexEntry(id=p.id, updated_at=p.updated_at, hash=None if p.updated_at else fast_hash(p))
        for p in products
    ]


def reconcile(fresh_products: Iterable[Product], cached: Optional[CatalogSnapshot]) -> List[Product]:
    """Merge a fresh product list against the cached snapshot.

    Unchanged products come back as the cached instances; new or changed ones
    (or any we cannot prove unchanged) come back as the fresh instances.
    """
    fresh_products = list(fresh_products)
    if cached is None:
        return fresh_products
    entries = {e.id: e for e in cached.product_index}
    previous = {p.id: p for p in cached.products}

    merged: List[Product] = []
    for product in fresh_products:
        entry = entries.get(product.id)
        old = previous.get(product.id)
        if entry is None or old is None:
            merged.append(product)
        elif product.updated_at and entry.updated_at and product.updated_at == entry.updated_at:
            merged.append(old)
        elif not product.updated_at and entry.hash and fast_hash(product) == entry.hash:
            merged.append(old)
        else:
            merged.append(product)
    return merged


def cache_key(user: Optional[str]) -> str:
    return f"console::{user or 'anon'}"


class SnapshotStore:
    """Tiny key/value store on a sqlite file, with an in-memory fallback.

    Pass ``path=None`` for a memory-only store. If the file cannot be opened
    or written the store keeps working from memory for the rest of its life.
    """

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path) if path else None
        self._memory: Dict[str, str] = {}
        if self.path is not None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self._connect() as conn:
                    conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            except (OSError, sqlite3.Error) as e:
                logger.warning("Snapshot store at %s unavailable, using memory: %s", self.path, e)
                self.path = None

    @property
    def persistent(self) -> bool:
        return self.path is not None

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.path))

    def _fallback(self, action: str, e: Exception) -> None:
        logger.warning("Snapshot store %s failed (%s), falling back to memory", action, e)
        self.path = None

    def get(self, key: str) -> Optional[str]:
        if self.path is not None:
            try:
                conn = self._connect()
                try:
                    row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
                finally:
                    conn.close()
                return row[0] if row else None
            except sqlite3.Error as e:
                self._fallback("read", e)
        return self._memory.get(key)

    def put(self, key: str, value: str) -> None:
        if self.path is not None:
            try:
                conn = self._connect()
                try:
                    with conn:
                        conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value))
                finally:
                    conn.close()
                return
            except sqlite3.Error as e:
                self._fallback("write", e)
        self._memory[key] = value

    def delete(self, key: str) -> None:
        self._memory.pop(key, None)
        if self.path is not None:
            try:
                conn = self._connect()
                try:
                    with conn:
                        conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                finally:
                    conn.close()
            except sqlite3.Error as e:
                self._fallback("delete", e)


class CatalogCache:
    def __init__(self, store: Optional[SnapshotStore] = None, schema_version: int = SCHEMA_VERSION):
        self.store = store or SnapshotStore()
        self.schema_version = schema_version
        # last snapshot handed out per key; reused while the store still holds it
        self._live: Dict[str, CatalogSnapshot] = {}

    def load(self, user: Optional[str]) -> Optional[CatalogSnapshot]:
        key = cache_key(user)
        raw = self.store.get(key)
        if raw is None:
            self._live.pop(key, None)
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable snapshot for %s", user or "anon")
            self._live.pop(key, None)
            return None
        if not isinstance(data, dict) or data.get("schemaVersion") != self.schema_version:
            logger.info("Discarding snapshot for %s with schema %r", user or "anon",
                        data.get("schemaVersion") if isinstance(data, dict) else None)
            self._live.pop(key, None)
            return None
        live = self._live.get(key)
        if live is not None and live.updated_at == data.get("updatedAt"):
            return live
        try:
            snapshot = CatalogSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning("Discarding invalid snapshot for %s: %s", user or "anon", e)
            self._live.pop(key, None)
            return None
        self._live[key] = snapshot
        return snapshot

    def persist(self, snapshot: CatalogSnapshot) -> None:
        key = cache_key(snapshot.user)
        try:
            raw = snapshot.model_dump_json(by_alias=True, exclude_unset=False)
            self.store.put(key, raw)
        except (ValueError, TypeError, sqlite3.Error) as e:
            logger.warning("Could not write snapshot for %s: %s", snapshot.user, e)
            return
        self._live[key] = snapshot

    def clear(self, user: Optional[str]) -> None:
        self._live.pop(cache_key(user), None)
        self.store.delete(cache_key(user))

    def apply(
        self,
        user: Optional[str],
        products: Iterable[Product],
        collections: Optional[List[Collection]] = None,
        stores: Optional[List[Any]] = None,
    ) -> CatalogSnapshot:
        """Reconcile fresh products into the user's snapshot and persist it."""
        cached = self.load(user)
        merged = reconcile(products, cached)
        snapshot = CatalogSnapshot(
            products=merged,
            product_index=build_product_index(merged),
            stores=stores if stores is not None else (cached.stores if cached else []),
            collections=collections if collections is not None else (cached.collections if cached else []),
            updated_at=int(time.time() * 1000),
            user=user or "anon",
            schema_version=self.schema_version,
            data_presets=cached.data_presets if cached else None,
        )
        self.persist(snapshot)
        return snapshot

    def update_data_presets(self, user: Optional[str], presets: Presets) -> CatalogSnapshot:
        """Write presets through, creating an empty snapshot if none exists."""
        cached = self.load(user)
        if cached is None:
            snapshot = CatalogSnapshot(
                updated_at=int(time.time() * 1000),
                user=user or "anon",
                schema_version=self.schema_version,
                data_presets=presets,
            )
        else:
            snapshot = cached.model_copy(update={"data_presets": presets})
        self.persist(snapshot)
        return snapshot
