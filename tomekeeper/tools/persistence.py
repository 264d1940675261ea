"""
Persistence — the thin layer between a StateAdapter and a KeyValueStore.

This is the only place StorageError is caught. Load runs the full startup
pipeline (read, migrate, validate, adapt, repair); saves go field by field;
export/import use the `{version, exportDate, formData, characterState}`
envelope.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from tomekeeper.models import ExportEnvelope
from tomekeeper.models.base import as_str_list
from tomekeeper.tools import storage_keys as keys
from tomekeeper.tools.content import ContentRegistry, load_content
from tomekeeper.tools.events import StateEvent
from tomekeeper.tools.migrator import SCHEMA_VERSION, apply_migrations, read_schema_version
from tomekeeper.tools.repair import RepairResult, run_all_repairs
from tomekeeper.tools.state_adapter import StateAdapter
from tomekeeper.tools.storage import KeyValueStore, StorageError
from tomekeeper.tools.validator import validate_document, validate_form_data

logger = logging.getLogger("Persistence")


@dataclass
class LoadResult:
    adapter: StateAdapter
    form_data: Dict[str, Any] = field(default_factory=dict)
    repairs: RepairResult = field(default_factory=RepairResult)
    from_version: int = SCHEMA_VERSION


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------

def load_character_state(store: KeyValueStore) -> Dict[str, Any]:
    """Raw stored values for every known key. Absent keys are left out."""
    raw = {}
    for key in keys.STATE_KEYS:
        value = store.get(key, None)
        if value is not None:
            raw[key] = value
    return raw


def _write_schema_version(store: KeyValueStore) -> bool:
    try:
        store.set(keys.SCHEMA_VERSION_KEY, SCHEMA_VERSION)
    except StorageError as e:
        logger.error(f"Failed to record schema version: {e}")
        return False
    return True


def bootstrap(
    store: KeyValueStore,
    content: Optional[ContentRegistry] = None,
    slot_limits: Optional[Dict[str, int]] = None,
) -> LoadResult:
    """Startup pipeline: read -> migrate -> validate -> adapter -> repair.

    When migration, load-time cleanup or repair changed anything, the
    document is written back, and only after that write succeeds is the
    version marker advanced. A failed write leaves the old marker, so the
    next load migrates again.
    """
    content = content or load_content()
    from_version = read_schema_version(store)

    raw = load_character_state(store)
    migrated = apply_migrations(raw, from_version, content)
    adapter = StateAdapter(migrated, content, slot_limits)
    form_data = validate_form_data(store.get(keys.CHARACTER_SHEET_KEY, {}))
    normalized = any(raw.get(key) != adapter.get_field(key) for key in keys.STATE_KEYS)

    repairs = run_all_repairs(adapter, content)
    for note in repairs.notes:
        logger.info(note)

    migrated_now = from_version < SCHEMA_VERSION
    if migrated_now or normalized or repairs.changed:
        if save_character_state(store, adapter) and migrated_now:
            _write_schema_version(store)

    logger.info(f"Loaded character state (schema v{from_version} -> v{max(from_version, SCHEMA_VERSION)})")
    return LoadResult(adapter=adapter, form_data=form_data, repairs=repairs, from_version=from_version)


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------

def save_state_key(store: KeyValueStore, adapter: StateAdapter, key: str) -> bool:
    if key not in keys.EMPTY_STATE:
        logger.warning(f"Refusing to save unknown key: {key}")
        return False
    try:
        store.set(key, adapter.get_field(key))
    except StorageError as e:
        logger.error(f"Failed to save {key}: {e}")
        return False
    return True


def save_character_state(store: KeyValueStore, adapter: StateAdapter) -> bool:
    """Write every key. Keeps going after a failure; returns False if any failed."""
    ok = True
    for key in keys.STATE_KEYS:
        ok = save_state_key(store, adapter, key) and ok
    return ok


def save_form_data(store: KeyValueStore, form_data: Any) -> bool:
    try:
        store.set(keys.CHARACTER_SHEET_KEY, validate_form_data(form_data))
    except StorageError as e:
        logger.error(f"Failed to save character sheet: {e}")
        return False
    return True


def attach_autosave(adapter: StateAdapter, store: KeyValueStore) -> Callable[[], None]:
    """Persist each collection as soon as its change event fires.

    Returns a disposer that detaches every autosave handler.
    """
    disposers: List[Callable[[], None]] = []

    def make_handler(key: str):
        def handler(payload):
            try:
                store.set(key, payload)
            except StorageError as e:
                logger.error(f"Autosave failed for {key}: {e}")
        return handler

    for event in StateEvent:
        disposers.append(adapter.on(event, make_handler(event.storage_key)))

    def dispose():
        for disposer in disposers:
            disposer()

    return dispose


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------

def build_export(
    adapter: StateAdapter,
    form_data: Optional[Dict[str, Any]] = None,
    monthly_completed_books: Optional[List[str]] = None,
) -> Dict[str, Any]:
    character_state = adapter.to_document()
    monthly = as_str_list(monthly_completed_books)
    if monthly:
        character_state[keys.MONTHLY_COMPLETED_BOOKS_KEY] = monthly
    return {
        "version": SCHEMA_VERSION,
        "exportDate": datetime.now(timezone.utc).isoformat(),
        "formData": validate_form_data(form_data),
        "characterState": character_state,
    }


def export_from_store(store: KeyValueStore, adapter: StateAdapter) -> Dict[str, Any]:
    return build_export(
        adapter,
        store.get(keys.CHARACTER_SHEET_KEY, {}),
        store.get(keys.MONTHLY_COMPLETED_BOOKS_KEY, []),
    )


def parse_export(raw: Union[str, bytes, Dict[str, Any]]) -> Optional[ExportEnvelope]:
    """Parse an export file (JSON text or an already-decoded dict)."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.error(f"Import file is not valid JSON: {e}")
            return None
    try:
        return ExportEnvelope.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Import file must contain formData and characterState objects: {e.error_count()} error(s)")
        return None


def import_export(
    raw: Union[str, bytes, Dict[str, Any]],
    store: KeyValueStore,
    content: Optional[ContentRegistry] = None,
    adapter: Optional[StateAdapter] = None,
) -> Optional[Dict[str, Any]]:
    """Replace stored state with an export.

    The envelope's version is the source version for migration; the stored
    marker is not consulted. Returns the imported canonical document, or
    None if the envelope was rejected.
    """
    envelope = parse_export(raw)
    if envelope is None:
        return None

    if envelope.version > SCHEMA_VERSION:
        logger.warning(
            f"Imported data is from a newer version ({envelope.version}) than current "
            f"({SCHEMA_VERSION}); some data may not be recognized"
        )
    migrated = apply_migrations(envelope.character_state, envelope.version, content or load_content())
    document = validate_document(migrated)

    ok = True
    try:
        store.set(keys.CHARACTER_SHEET_KEY, validate_form_data(envelope.form_data))
        for key in keys.STATE_KEYS:
            store.set(key, document[key])
        monthly = envelope.character_state.get(keys.MONTHLY_COMPLETED_BOOKS_KEY)
        if monthly is not None:
            store.set(keys.MONTHLY_COMPLETED_BOOKS_KEY, as_str_list(monthly))
    except StorageError as e:
        logger.error(f"Import failed while writing to storage: {e}")
        ok = False

    if ok:
        _write_schema_version(store)
    if adapter is not None:
        changed = adapter.load_document(document)
        logger.info(f"Imported export into live state ({len(changed)} key(s) changed)")
    return document
