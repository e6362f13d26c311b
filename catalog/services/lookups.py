"""
Lookup table resolution: name -> id for producers, colors, regions, ...

Resolution is an atomic "insert, ignore on conflict, then select":

    INSERT INTO producers (name) VALUES (%s) ON CONFLICT DO NOTHING;
    SELECT id FROM producers WHERE name = %s;

Two workers resolving the same new name at the same time therefore end up
with the same row; the unique index on name arbitrates. Lookup rows are
never updated or deleted.
"""

import logging
from typing import Dict, Iterable, Optional, Type, Union

from catalog.exceptions import PersistenceError
from catalog.models import LOOKUP_MODELS, LookupTable

logger = logging.getLogger(__name__)

LookupRef = Union[str, Type[LookupTable]]


def get_lookup_model(model_or_table: LookupRef) -> Type[LookupTable]:
    """
    Accept either a lookup model class or its table name ("producers").

    Raises:
        ValueError: if the argument names no lookup table
    """
    if isinstance(model_or_table, str):
        try:
            return LOOKUP_MODELS[model_or_table]
        except KeyError:
            raise ValueError(f"Unknown lookup table {model_or_table!r}") from None

    if isinstance(model_or_table, type) and issubclass(model_or_table, LookupTable):
        return model_or_table

    raise ValueError(f"Not a lookup table: {model_or_table!r}")


def _clean_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Lookup name must be a non-empty string, got {name!r}")
    return name.strip()


def resolve(model_or_table: LookupRef, name: str) -> int:
    """
    Return the id of the row named ``name``, creating it if needed.

    Args:
        model_or_table: Lookup model class or table name
        name: Exact name (leading/trailing whitespace ignored)

    Returns:
        The row's id; stable across calls

    Raises:
        ValueError: for a blank name or an unknown table
    """
    model = get_lookup_model(model_or_table)
    name = _clean_name(name)

    model.objects.bulk_create([model(name=name)], ignore_conflicts=True)
    return model.objects.values_list("id", flat=True).get(name=name)


def resolve_optional(model_or_table: LookupRef, name: Optional[str]) -> Optional[int]:
    """Like resolve(), but an unset/blank name resolves to None (a null FK)."""
    if name is None or not str(name).strip():
        return None
    return resolve(model_or_table, name)


def resolve_many(model_or_table: LookupRef, names: Iterable[str]) -> Dict[str, int]:
    """
    Resolve several names of one table with a single insert and a single select.

    Returns:
        Mapping of each (stripped) name to its id
    """
    model = get_lookup_model(model_or_table)
    cleaned = list(dict.fromkeys(_clean_name(name) for name in names))
    if not cleaned:
        return {}

    model.objects.bulk_create([model(name=name) for name in cleaned], ignore_conflicts=True)
    ids = dict(model.objects.filter(name__in=cleaned).values_list("name", "id"))

    missing = [name for name in cleaned if name not in ids]
    if missing:
        # Only possible if a row vanished between insert and select
        raise PersistenceError(f"{model._meta.db_table}: could not resolve {missing}")

    return ids
