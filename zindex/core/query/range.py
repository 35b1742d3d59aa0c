import re
from dataclasses import dataclass

from zindex.core.errors import RangeInferenceError, ValidationError

# Leading alphanumeric run followed by one structural separator.
_NAMESPACE = re.compile(r"[A-Za-z0-9]+[_:\-/#]", re.ASCII)


@dataclass(frozen=True, slots=True)
class LexBound:
    """
    One decoded end of a lexicographic range.

    `value` is None for an open end ("-" or "+").
    """
    value: str | None
    inclusive: bool

    @classmethod
    def parse(cls, raw: str) -> "LexBound":
        if raw in ("-", "+"):
            return cls(None, True)
        if raw.startswith("["):
            return cls(raw[1:], True)
        if raw.startswith("("):
            return cls(raw[1:], False)
        raise ValidationError(f"Malformed lexicographic bound: {raw!r}")


@dataclass(frozen=True, slots=True)
class LexRange:
    """
    A lexicographic range in the ordered-set store's bound syntax.

    `start` and `end` are sent to the store verbatim: "[x" is inclusive,
    "(x" exclusive. Stores that evaluate ranges client-side can use
    `contains`, which compares by code point, the same order as the
    UTF-8 byte comparison used by the store.
    """
    start: str
    end: str

    def after(self, member: str) -> "LexRange":
        """
        Return the same range resuming strictly after `member`.
        """
        return LexRange(start=f"({member}", end=self.end)

    def contains(self, member: str) -> bool:
        return self.above_start(member) and self.below_end(member)

    def above_start(self, member: str) -> bool:
        bound = LexBound.parse(self.start)
        if bound.value is None:
            return self.start == "-"
        if bound.inclusive:
            return member >= bound.value
        return member > bound.value

    def below_end(self, member: str) -> bool:
        bound = LexBound.parse(self.end)
        if bound.value is None:
            return self.end == "+"
        if bound.inclusive:
            return member <= bound.value
        return member < bound.value


class RangeInferencer:
    """
    Derives the lexicographic range covered by a scan or a count.

    With an explicit end key both bounds are inclusive. Without one, the
    range is the namespace of the start key: its leading alphanumeric run
    and the separator that follows it (one of _ : - / #). The upper bound
    is that prefix with its last character bumped by one code point,
    taken exclusively, so every key of the namespace is covered whatever
    characters follow the separator.

        infer("user:1000")       -> [user:1000 .. (user;
        infer("a", "b")          -> [a .. [b
    """

    @staticmethod
    def infer(start_key: str, end_key: str | None = None) -> LexRange:
        if not isinstance(start_key, str) or not start_key:
            raise ValidationError("start_key must be a non-empty string")

        if end_key:
            if end_key < start_key:
                raise ValidationError(
                    f"end_key {end_key!r} sorts before start_key {start_key!r}"
                )
            return LexRange(start=f"[{start_key}", end=f"[{end_key}")

        return LexRange(
            start=f"[{start_key}",
            end=f"({RangeInferencer.namespace_upper_bound(start_key)}",
        )

    @staticmethod
    def namespace_upper_bound(start_key: str) -> str:
        """
        Return the smallest string sorting after every key that shares the
        namespace prefix of `start_key`.
        """
        match = _NAMESPACE.match(start_key)
        if match is None:
            raise RangeInferenceError(
                f"Cannot infer an end key from {start_key!r}: it does not start "
                "with an alphanumeric prefix followed by one of '_', ':', '-', "
                "'/', '#'. Provide an explicit end key."
            )

        prefix = match.group(0)
        return prefix[:-1] + chr(ord(prefix[-1]) + 1)
