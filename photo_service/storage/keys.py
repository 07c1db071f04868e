"""
    Object key addressing.

    Keys have the shape ``namespace/entity_id/filename``. Every artifact gets its
    own random entity id, so an original and its thumbnail share nothing in their
    keys; the image record is the only link between them.
"""
from typing import NamedTuple
import uuid

SEPARATOR = "/"

class KeyParts(NamedTuple):
    namespace: str
    entity_id: str
    filename: str

def new_entity_id() -> str:
    """Generates a fresh random entity id for one artifact."""
    return str(uuid.uuid4())

def _check_segment(name: str, value: str):
    if not value:
        raise ValueError(f"{name} must not be empty")
    if SEPARATOR in value:
        raise ValueError(f"{name} must not contain '{SEPARATOR}': {value!r}")

def create_key(namespace: str, entity_id: str, filename: str) -> str:
    """Builds the object key for an artifact."""
    _check_segment("namespace", namespace)
    _check_segment("entity_id", entity_id)
    if not filename:
        raise ValueError("filename must not be empty")
    return SEPARATOR.join((namespace, entity_id, filename))

def parse_key(key: str) -> KeyParts:
    """Splits a key produced by create_key back into its parts."""
    parts = key.split(SEPARATOR, 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Malformed object key: {key!r}")
    return KeyParts(*parts)
