import uuid
from typing import Any, Callable

# The extraction schema asks the generator to write this literal wherever an id belongs.
UUID_PLACEHOLDER = "UUIDv4"


def _new_id() -> str:
    return str(uuid.uuid4())


def resolve_placeholders(
    value: Any,
    sentinel: str = UUID_PLACEHOLDER,
    id_factory: Callable[[], str] = _new_id,
) -> Any:
    """
    Return a copy of value with every string equal to sentinel replaced by a fresh id.

    Every dict and list is visited; each replacement gets its own id.
    """
    if isinstance(value, dict):
        return {key: resolve_placeholders(item, sentinel, id_factory) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_placeholders(item, sentinel, id_factory) for item in value]
    if isinstance(value, str) and value == sentinel:
        return id_factory()
    return value
