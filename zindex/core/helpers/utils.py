from collections.abc import Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """
    Split `items` into consecutive slices of at most `size` elements.
    """
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


def normalize_keys(keys: str | Iterable[str]) -> list[str]:
    """
    Accept a single key or an iterable of keys and return a list.
    """
    if isinstance(keys, str):
        return [keys]
    return list(keys)
