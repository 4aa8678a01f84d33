"""Local persistence helpers for saved deals, workspaces, and buy-box profiles."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path

from deal_engine.schema import (
    BUY_BOX_PROFILE_TYPE,
    DEAL_TYPE,
    SCHEMA_VERSION,
    WORKSPACE_TYPE,
    migrate_buy_box,
    migrate_import_payload,
)


STORE_DIR = Path(".local_store")
DEAL_STORE_FILE = STORE_DIR / "deals.json"
WORKSPACE_STORE_FILE = STORE_DIR / "workspaces.json"
PROFILE_STORE_FILE = STORE_DIR / "buy_box_profiles.json"

_DEFAULT_STORE_DIR = Path(".local_store")
_STORAGE_ENV_VAR = "MNA_STORAGE_ROOT"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _expand_storage_root(path_value: str | Path | None) -> Path:
    if path_value is None:
        return _DEFAULT_STORE_DIR
    text = str(path_value).strip()
    if not text:
        return _DEFAULT_STORE_DIR
    expanded = os.path.expandvars(os.path.expanduser(text))
    return Path(expanded)


def configure_storage_root(path_value: str | Path | None) -> Path:
    """Point deal/workspace/profile persistence at a storage root directory."""

    global STORE_DIR, DEAL_STORE_FILE, WORKSPACE_STORE_FILE, PROFILE_STORE_FILE
    STORE_DIR = _expand_storage_root(path_value)
    DEAL_STORE_FILE = STORE_DIR / "deals.json"
    WORKSPACE_STORE_FILE = STORE_DIR / "workspaces.json"
    PROFILE_STORE_FILE = STORE_DIR / "buy_box_profiles.json"
    return STORE_DIR


def storage_root_path() -> str:
    return str(STORE_DIR.resolve())


def storage_root_from_env() -> Path:
    return _expand_storage_root(os.getenv(_STORAGE_ENV_VAR, ""))


def _path_for(kind: str) -> Path:
    if kind == DEAL_TYPE:
        return DEAL_STORE_FILE
    if kind == WORKSPACE_TYPE:
        return WORKSPACE_STORE_FILE
    if kind == BUY_BOX_PROFILE_TYPE:
        return PROFILE_STORE_FILE
    raise ValueError(f"Unsupported store kind: {kind}")


def _load_store(kind: str) -> dict:
    p = _path_for(kind)
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _save_store(kind: str, data: dict) -> None:
    STORE_DIR.mkdir(parents=True, exist_ok=True)
    p = _path_for(kind)
    tmp = p.with_suffix(f"{p.suffix}.tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    tmp.replace(p)


def list_saved_names(kind: str) -> list[str]:
    return sorted(_load_store(kind).keys())


def load_saved(kind: str, name: str) -> dict | None:
    return deepcopy(_load_store(kind).get(name))


def save_named_bundle(kind: str, name: str, bundle: dict, overwrite: bool = False) -> tuple[bool, str]:
    if not name.strip():
        return False, "Name is required."
    store = _load_store(kind)
    if name in store and not overwrite:
        return False, "Name already exists."
    store[name] = bundle
    _save_store(kind, store)
    return True, "Saved."


def delete_saved(kind: str, name: str) -> bool:
    store = _load_store(kind)
    if name not in store:
        return False
    del store[name]
    _save_store(kind, store)
    return True


def rename_saved(kind: str, old_name: str, new_name: str) -> tuple[bool, str]:
    new_name = new_name.strip()
    if not new_name:
        return False, "Name is required."
    store = _load_store(kind)
    if old_name not in store:
        return False, "Saved item not found."
    if new_name == old_name:
        return True, "Name unchanged."
    if new_name in store:
        return False, "Name already exists."
    bundle = store.pop(old_name)
    if isinstance(bundle, dict):
        bundle["name"] = new_name
    store[new_name] = bundle
    _save_store(kind, store)
    return True, "Renamed."


def _bundle_header(kind: str, name: str) -> dict:
    return {
        "type": kind,
        "schema_version": SCHEMA_VERSION,
        "name": name,
        "created_at": _now_iso(),
    }


def build_deal_bundle(name: str, records: dict) -> dict:
    bundle = _bundle_header(DEAL_TYPE, name)
    bundle["records"] = deepcopy(records)
    return bundle


def build_workspace_bundle(name: str, records: dict, ui_state: dict) -> dict:
    bundle = _bundle_header(WORKSPACE_TYPE, name)
    bundle["records"] = deepcopy(records)
    bundle["ui_state"] = deepcopy(ui_state)
    return bundle


def build_profile_bundle(name: str, buy_box: dict) -> dict:
    bundle = _bundle_header(BUY_BOX_PROFILE_TYPE, name)
    bundle["buy_box"] = deepcopy(buy_box)
    return bundle


def profile_from_bundle(bundle: dict | None) -> tuple[dict, list[str]]:
    raw = bundle.get("buy_box") if isinstance(bundle, dict) else None
    buy_box, warnings, unknown_keys = migrate_buy_box(raw if raw is not None else {})
    if unknown_keys:
        warnings.append(f"Ignored unknown keys: {', '.join(unknown_keys)}.")
    return buy_box, warnings


def parse_import_json(raw_json: str) -> tuple[dict, dict | None, list[str], list[str]]:
    try:
        payload = json.loads(raw_json)
    except json.JSONDecodeError:
        return {}, None, ["Could not parse import JSON."], []
    records, ui_state, warnings, unknown_keys = migrate_import_payload(payload)
    return records, ui_state, warnings, unknown_keys


configure_storage_root(storage_root_from_env())
