"""
Material-change detection for request edits.

An edit is material when any of title, description, priority, or category
changes, nil-to-value and value-to-nil included. Material edits to a request
under review invalidate its open approval round. Keys absent from ``new``
are not being updated and are never considered changed.
"""

MATERIAL_FIELDS = ("title", "description", "priority_code", "category_id")


def get_changed_fields(old: dict, new: dict) -> list[str]:
    """Keys of ``new`` whose value differs from ``old``, in ``new``'s order.

    Used for audit payloads; the material decision uses is_material_change.
    """
    return [key for key, value in new.items() if old.get(key) != value]


def is_material_change(old: dict, new: dict, fields=MATERIAL_FIELDS) -> bool:
    return any(field in new and old.get(field) != new[field] for field in fields)
