import hashlib


class KeyHasher:
    """
    Maps record keys to fixed-width routing codes.

    The routing code of a key is the first `hash_chars` hex digits of the
    MD5 digest of its UTF-8 encoding. MD5 is used for its uniform output,
    not for any security property: the distribution of keys across
    partitions only depends on the digest being evenly spread.
    """
    def __init__(self, hash_chars: int) -> None:
        self._hash_chars = hash_chars

    @property
    def hash_chars(self) -> int:
        return self._hash_chars

    def routing_code(self, key: str) -> str:
        """
        Return the routing code of `key`, as lowercase hex digits.

        The result is pure and deterministic: the same key always lands in
        the same partition for a given width.
        """
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        return digest[:self._hash_chars]
