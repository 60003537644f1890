"""
Record merge engine.

Merges a freshly fetched remote payload into the local product tree. Every
scalar leaf of the payload lands on a versioned field entry addressed by its
dotted path:

    {"value": <scalar>, "timestamp": <int>, "previous": [{"value", "timestamp"}, ...]}

``previous`` is append-only and oldest-first. Unchanged values keep their
timestamp, so re-running against an unchanged catalog is a no-op.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

PATH_SEPARATOR = "."

CATEGORIES_FIELD = "categories"


@dataclass
class MergeResult:
    """Paths touched by one merge."""
    changed: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)

    @property
    def modified(self) -> bool:
        return bool(self.changed or self.added)


def new_record(now: int) -> Dict[str, Any]:
    """Skeleton of a product record that has never been seen."""
    return {
        "product": {},
        "stats": {
            "created_at": now,
            "updated_at": now,
            "updates": 0,
        },
    }


def is_entry(node: Any) -> bool:
    """True if ``node`` is a versioned field entry."""
    return isinstance(node, dict) and "timestamp" in node and "previous" in node


def split_path(path: str) -> List[str]:
    return path.split(PATH_SEPARATOR)


def resolve_or_create(tree: Dict[str, Any], path: Sequence[str]) -> Dict[str, Any]:
    """
    Walk ``tree`` along ``path`` creating empty nodes where missing and
    return the node at the end of the path.
    """
    node = tree
    for part in path:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    return node


def resolve(tree: Mapping[str, Any], path: Sequence[str]) -> Optional[Any]:
    """Read-only lookup; ``None`` if any segment is missing."""
    node: Any = tree
    for part in path:
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def iter_leaves(payload: Any, prefix: str = "") -> Iterator[Tuple[str, Any]]:
    """Yield ``(dotted_path, scalar)`` for every leaf of a nested payload."""
    if isinstance(payload, Mapping):
        items = payload.items()
    else:
        items = enumerate(payload)

    for key, value in items:
        path = f"{prefix}{key}"
        if isinstance(value, (Mapping, list, tuple)):
            yield from iter_leaves(value, path + PATH_SEPARATOR)
            continue
        yield path, value


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value not in ("", "0")
    return bool(value)


def loosely_equal(stored: Any, incoming: Any) -> bool:
    """
    Type-coercing comparison.

    The remote API flips between ``"1.50"`` and ``1.5`` for the same field,
    which must not count as a change.
    """
    if stored is incoming:
        return True

    if stored is None or incoming is None:
        other = incoming if stored is None else stored
        if isinstance(other, str):
            return other == ""
        return not other

    if isinstance(stored, bool) or isinstance(incoming, bool):
        return _truthy(stored) == _truthy(incoming)

    if type(stored) is type(incoming) and not isinstance(stored, str):
        return stored == incoming

    left, right = _as_number(stored), _as_number(incoming)
    if left is not None and right is not None:
        return left == right

    if isinstance(stored, str) and isinstance(incoming, str):
        return stored == incoming

    # number against a non-numeric string
    return str(stored) == str(incoming)


def index_categories(
    existing_categories: Optional[Mapping[str, Any]],
    remote_categories: Any
) -> Dict[str, Any]:
    """
    Re-key the remote ``categories`` array against the slots already recorded.

    A remote category whose ``id`` matches the ``id.value`` of an existing slot
    keeps that slot; the rest are appended after the last existing slot, so a
    slot's history stays tied to the same category when the remote order or
    the set of assigned categories changes.
    """
    existing = existing_categories or {}
    slots: Dict[str, Any] = {}

    known: List[Tuple[str, Any]] = []
    for slot, node in existing.items():
        id_entry = node.get("id") if isinstance(node, Mapping) else None
        if is_entry(id_entry):
            known.append((slot, id_entry.get("value")))

    if isinstance(remote_categories, Mapping):
        remote = list(remote_categories.values())
    else:
        remote = list(remote_categories or [])

    counter = len(existing)
    for category in remote:
        category_id = category.get("id") if isinstance(category, Mapping) else None
        slot = next((s for s, value in known if value == category_id), None)
        if slot is not None:
            slots[slot] = category
            continue
        slots[str(counter)] = category
        counter += 1

    return slots


def merge_product(
    tree: Dict[str, Any],
    payload: Mapping[str, Any],
    now: int
) -> MergeResult:
    """
    Merge ``payload`` into the product ``tree`` in place.

    Args:
        tree: The ``product`` subtree of a local record (may be empty)
        payload: Remote product, nested objects and arrays allowed
        now: Observation time in epoch seconds

    Returns:
        MergeResult with the dotted paths that changed value and the
        paths that were seen for the first time
    """
    result = MergeResult()

    data = dict(payload)
    if CATEGORIES_FIELD in data:
        data[CATEGORIES_FIELD] = index_categories(
            tree.get(CATEGORIES_FIELD), data[CATEGORIES_FIELD]
        )

    for path, value in iter_leaves(data):
        entry = resolve_or_create(tree, split_path(path))

        if not is_entry(entry):
            # A former object keeps its children next to the new entry keys
            entry.setdefault("value", value)
            entry.setdefault("timestamp", now)
            entry.setdefault("previous", [])
            result.added.append(path)
            continue

        if loosely_equal(entry.get("value"), value):
            continue

        entry["previous"].append({
            "value": entry.get("value"),
            "timestamp": entry["timestamp"],
        })
        entry["value"] = value
        entry["timestamp"] = now
        result.changed.append(path)

    return result


def sort_product(tree: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``tree`` with its top-level fields in sorted order."""
    return {key: tree[key] for key in sorted(tree)}


def field_value(tree: Mapping[str, Any], path: str) -> Optional[Any]:
    """Current value stored at ``path`` or ``None``."""
    entry = resolve(tree, split_path(path))
    if is_entry(entry):
        return entry.get("value")
    return None
