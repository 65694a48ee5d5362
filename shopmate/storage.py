# shopmate/storage.py
"""JSON-file persistence under the data directory."""
import json
import logging
import os
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from shopmate.models import HistoryItem, Presets, UserList, UserStore, split_tags
from shopmate.utils import host_from_url

logger = logging.getLogger(__name__)

VARIANT_EDIT_KEYS = ("price", "compare_at_price", "cost_per_item")
PRESET_KINDS = ("vendors", "productTypes", "tags")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def list_item_key(item: Dict[str, Any]) -> str:
    return f"{item.get('__storeHost') or ''}:{item.get('handle')}"


class Storage:
    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self.users_file = self.data_dir / "users.json"
        self.history_file = self.data_dir / "history.json"
        self.stores_file = self.data_dir / "stores.json"
        self.lists_file = self.data_dir / "lists.json"
        self.presets_file = self.data_dir / "presets.json"
        self.prefs_file = self.data_dir / "prefs.json"
        self.cache_dir = self.data_dir / "cache"

    # ---------------- raw file helpers ---------------- #

    def read_json(self, path: Path, fallback):
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return fallback
        except ValueError:
            logger.warning("Ignoring unreadable JSON file %s", path)
            return fallback

    def write_json(self, path: Path, data) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    # ---------------- users ---------------- #

    def list_users(self) -> List[str]:
        return self.read_json(self.users_file, [])

    def add_user(self, email: str) -> None:
        users = self.list_users()
        if email not in users:
            users.append(email)
            self.write_json(self.users_file, users)

    # ---------------- history ---------------- #

    def get_history(self, email: str) -> List[HistoryItem]:
        rows = self.read_json(self.history_file, [])
        return [HistoryItem.model_validate(r) for r in rows if r.get("email") == email]

    def add_history(self, item: HistoryItem) -> None:
        rows = self.read_json(self.history_file, [])
        rows.append(item.model_dump(by_alias=True))
        self.write_json(self.history_file, rows)

    # ---------------- cached scrapes ---------------- #

    def cache_path_for(self, email: str, shop_url: str) -> Path:
        host = host_from_url(shop_url)
        return self.cache_dir / quote(email, safe="") / f"{quote(host, safe='')}.json"

    def load_cached_scrape(self, email: str, shop_url: str) -> Optional[Dict[str, Any]]:
        data = self.read_json(self.cache_path_for(email, shop_url), None)
        return data if isinstance(data, dict) else None

    def save_cached_scrape(self, email: str, shop_url: str, data: Dict[str, Any]) -> None:
        self.write_json(self.cache_path_for(email, shop_url), data)

    def delete_cached_scrape(self, email: str, shop_url: str) -> None:
        try:
            self.cache_path_for(email, shop_url).unlink()
        except FileNotFoundError:
            pass

    # ---------------- stores ---------------- #

    def _all_stores(self) -> List[Dict[str, Any]]:
        return self.read_json(self.stores_file, [])

    def get_stores(self, email: str) -> List[UserStore]:
        return [UserStore.model_validate(s) for s in self._all_stores() if s.get("email") == email]

    def add_store(self, email: str, shop_url: str) -> None:
        rows = self._all_stores()
        if not any(s.get("email") == email and s.get("shopUrl") == shop_url for s in rows):
            rows.append({"email": email, "shopUrl": shop_url})
            self.write_json(self.stores_file, rows)

    def upsert_store_meta(self, email: str, shop_url: str, **meta) -> UserStore:
        rows = self._all_stores()
        patch = UserStore(email=email, shop_url=shop_url, **meta).model_dump(by_alias=True, exclude_none=True)
        for i, s in enumerate(rows):
            if s.get("email") == email and s.get("shopUrl") == shop_url:
                rows[i] = {**s, **patch}
                break
        else:
            rows.append(patch)
        self.write_json(self.stores_file, rows)
        return UserStore.model_validate(patch)

    def remove_store(self, email: str, shop_url: str) -> None:
        rows = [s for s in self._all_stores() if not (s.get("email") == email and s.get("shopUrl") == shop_url)]
        self.write_json(self.stores_file, rows)
        self.delete_cached_scrape(email, shop_url)

    # ---------------- lists ---------------- #

    def _all_lists(self) -> List[Dict[str, Any]]:
        return self.read_json(self.lists_file, [])

    def _find_list(self, rows, email: str, list_id: str) -> int:
        for i, row in enumerate(rows):
            if row.get("email") == email and row.get("id") == list_id:
                return i
        return -1

    def get_lists(self, email: str) -> List[UserList]:
        return [UserList.model_validate(r) for r in self._all_lists() if r.get("email") == email]

    def get_list(self, email: str, list_id: str) -> Optional[UserList]:
        rows = self._all_lists()
        idx = self._find_list(rows, email, list_id)
        return UserList.model_validate(rows[idx]) if idx >= 0 else None

    def create_list(self, email: str, name: str) -> UserList:
        rows = self._all_lists()
        lst = UserList(
            id=f"{int(time.time() * 1000)}-{secrets.token_hex(3)}",
            email=email,
            name=name,
            created_at=utcnow_iso(),
        )
        rows.append(lst.model_dump(by_alias=True))
        self.write_json(self.lists_file, rows)
        return lst

    def rename_list(self, email: str, list_id: str, name: str) -> Optional[UserList]:
        rows = self._all_lists()
        idx = self._find_list(rows, email, list_id)
        if idx < 0:
            return None
        rows[idx]["name"] = name
        self.write_json(self.lists_file, rows)
        return UserList.model_validate(rows[idx])

    def delete_list(self, email: str, list_id: str) -> bool:
        rows = self._all_lists()
        idx = self._find_list(rows, email, list_id)
        if idx < 0:
            return False
        del rows[idx]
        self.write_json(self.lists_file, rows)
        return True

    def add_items_to_list(self, email: str, list_id: str, products: List[Dict[str, Any]]) -> Optional[UserList]:
        rows = self._all_lists()
        idx = self._find_list(rows, email, list_id)
        if idx < 0:
            return None
        items = rows[idx].setdefault("items", [])
        seen = {list_item_key(it) for it in items}
        for p in products:
            key = list_item_key(p)
            if key not in seen:
                items.append(p)
                seen.add(key)
        self.write_json(self.lists_file, rows)
        return UserList.model_validate(rows[idx])

    def remove_list_items(self, email: str, list_id: str, handles: List[str]) -> Optional[UserList]:
        rows = self._all_lists()
        idx = self._find_list(rows, email, list_id)
        if idx < 0:
            return None
        drop = set(handles)
        rows[idx]["items"] = [it for it in rows[idx].get("items", []) if it.get("handle") not in drop]
        self.write_json(self.lists_file, rows)
        return UserList.model_validate(rows[idx])

    def update_list_items(self, email: str, list_id: str, updates: List[Dict[str, Any]]) -> Optional[UserList]:
        """Apply partial edits, matched by item id (or variant id) or by handle."""
        rows = self._all_lists()
        idx = self._find_list(rows, email, list_id)
        if idx < 0:
            return None
        items = rows[idx].get("items", [])
        for u in updates:
            key_id, key_handle, patch = u.get("id"), u.get("handle"), u.get("data") or {}
            for i, it in enumerate(items):
                by_id = key_id is not None and (it.get("id") == key_id or it.get("variant_id") == key_id)
                if by_id or (key_handle and it.get("handle") == key_handle):
                    merged = {**it, **patch}
                    if "variants" in it and "variants" not in patch:
                        merged["variants"] = _merge_variant_edits(it["variants"], patch)
                    items[i] = merged
                    break
        rows[idx]["items"] = items
        self.write_json(self.lists_file, rows)
        return UserList.model_validate(rows[idx])

    # ---------------- presets ---------------- #

    def get_presets(self, email: str) -> Presets:
        rows = self.read_json(self.presets_file, {})
        return Presets.model_validate(rows.get(email) or {})

    def _save_presets(self, email: str, presets: Presets) -> Presets:
        rows = self.read_json(self.presets_file, {})
        rows[email] = presets.model_dump(by_alias=True)
        self.write_json(self.presets_file, rows)
        return presets

    def add_to_presets(self, email: str, additions: Dict[str, Any]) -> Presets:
        current = self.get_presets(email).model_dump(by_alias=True)
        for kind in PRESET_KINDS:
            values = split_tags(additions.get(kind))
            merged = list(current[kind])
            for v in values:
                if v not in merged:
                    merged.append(v)
            current[kind] = sorted(merged)
        return self._save_presets(email, Presets.model_validate(current))

    def remove_from_presets(self, email: str, kind: str, value: str) -> Optional[Presets]:
        current = self.get_presets(email).model_dump(by_alias=True)
        if kind not in current or value not in current[kind]:
            return None
        current[kind].remove(value)
        return self._save_presets(email, Presets.model_validate(current))

    def rename_preset(self, email: str, kind: str, old: str, new: str) -> Optional[Presets]:
        current = self.get_presets(email).model_dump(by_alias=True)
        if kind not in current or old not in current[kind]:
            return None
        values = [v for v in current[kind] if v != old]
        if new and new not in values:
            values.append(new)
        current[kind] = sorted(values)
        return self._save_presets(email, Presets.model_validate(current))

    # ---------------- prefs ---------------- #

    def get_prefs(self, email: str) -> Dict[str, Any]:
        return self.read_json(self.prefs_file, {}).get(email) or {}

    def update_prefs(self, email: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        rows = self.read_json(self.prefs_file, {})
        rows[email] = {**(rows.get(email) or {}), **patch}
        self.write_json(self.prefs_file, rows)
        return rows[email]


def _merge_variant_edits(existing, patch: Dict[str, Any]):
    # price-level edits land on the first variant
    if not isinstance(existing, list) or not existing:
        return existing
    if not any(k in patch for k in VARIANT_EDIT_KEYS):
        return existing
    out = list(existing)
    out[0] = dict(out[0])
    for k in VARIANT_EDIT_KEYS:
        if patch.get(k) is not None:
            out[0][k] = patch[k]
    return out
