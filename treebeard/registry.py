"""Turns application objects into named, serializable RegisteredObjects.

Naming, highest priority first:

1. a record (mapping without ``id``) names each of its values after its key;
2. an explicit ``name`` field on the object itself;
3. the lower-cased class name, or ``"object"`` for plain mappings.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .models import RegisteredObject

logger = logging.getLogger(__name__)

GENERIC_NAME = "object"
MAX_FIELD_LENGTH = 1024

_SCALARS = (str, bytes, bytearray, int, float, bool, list, tuple, set, frozenset)


def normalize(value: Any, name: Optional[str] = None) -> List[RegisteredObject]:
    if value is None or isinstance(value, _SCALARS):
        logger.debug("ignoring registration of %s value", type(value).__name__)
        return []

    if isinstance(value, Mapping):
        if "id" in value:
            return _single(dict(value), record_key=name, class_name=None)
        return _record(value)

    attributes = _object_attributes(value)
    if attributes is None:
        logger.debug("cannot read attributes of %s; not registered", type(value).__name__)
        return []
    return _single(attributes, record_key=name, class_name=type(value).__name__.lower())


def _record(record: Mapping) -> List[RegisteredObject]:
    objects: List[RegisteredObject] = []
    for key, item in record.items():
        if item is None or isinstance(item, _SCALARS):
            continue
        objects.extend(normalize(item, name=str(key)))
    return objects


def _single(
    attributes: Dict[str, Any], *, record_key: Optional[str], class_name: Optional[str]
) -> List[RegisteredObject]:
    object_id = attributes.get("id")
    if object_id is None or object_id == "":
        logger.warning(
            "registered object %r has no id; not registered", record_key or class_name or GENERIC_NAME
        )
        return []

    explicit = attributes.get("name")
    explicit = explicit if isinstance(explicit, str) and explicit else None
    if record_key is not None:
        if explicit is not None and explicit != record_key:
            logger.warning(
                "record key %r overrides explicit name %r for object %s", record_key, explicit, object_id
            )
        name = record_key
    else:
        name = explicit or class_name or GENERIC_NAME

    return [RegisteredObject(name=name, id=str(object_id), fields=_filter_fields(attributes))]


def _filter_fields(attributes: Dict[str, Any]) -> Dict[str, Any]:
    filtered: Dict[str, Any] = {}
    for key, value in attributes.items():
        if key in ("id", "name") or key.startswith("_"):
            continue
        if isinstance(value, (bool, int, float)):
            filtered[key] = value
        elif isinstance(value, str):
            if len(value) <= MAX_FIELD_LENGTH and "\n" not in value:
                filtered[key] = value
        elif isinstance(value, (datetime, date)):
            filtered[key] = value.isoformat()
    return filtered


def _object_attributes(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, type) or callable(value):
        return None
    if dataclasses.is_dataclass(value):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if hasattr(value, "__dict__"):
        return dict(vars(value))
    slots = getattr(type(value), "__slots__", None)
    if slots:
        names = [slots] if isinstance(slots, str) else list(slots)
        return {slot: getattr(value, slot) for slot in names if hasattr(value, slot)}
    return None
