from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from Cryptodome.Hash import keccak

from .constants import DEFAULT_CHUNK_SIZE
from .errors import UnsupportedAlgorithm


@dataclass(frozen=True)
class Algorithm:
    name: str
    factory: Callable[[], object]
    block_size: int  # HMAC input block size in bytes


def _keccak(bits: int) -> Callable[[], object]:
    # hashlib only ships the padded SHA-3 variants; raw Keccak comes from PyCryptodomex.
    return lambda: keccak.new(digest_bits=bits)


_ALGORITHMS: Dict[str, Algorithm] = {
    a.name.lower(): a
    for a in (
        Algorithm("Sha256", hashlib.sha256, 64),
        Algorithm("Sha512", hashlib.sha512, 128),
        Algorithm("Sha3_256", hashlib.sha3_256, 136),
        Algorithm("Sha3_512", hashlib.sha3_512, 72),
        Algorithm("Keccak_256", _keccak(256), 136),
        Algorithm("Keccak_512", _keccak(512), 72),
        Algorithm("Blake2b_256", lambda: hashlib.blake2b(digest_size=32), 128),
        Algorithm("Blake2b_512", lambda: hashlib.blake2b(digest_size=64), 128),
    )
}


def algorithm_names() -> list[str]:
    return [a.name for a in _ALGORITHMS.values()]


def get_algorithm(name: str) -> Algorithm:
    """Look up an algorithm by name (case-insensitive).

    Raises:
        UnsupportedAlgorithm: If the name is not registered.
    """
    try:
        return _ALGORITHMS[str(name).lower()]
    except KeyError:
        raise UnsupportedAlgorithm(
            f"unsupported hash algorithm '{name}' (expected one of: {', '.join(algorithm_names())})"
        ) from None


class KeyedDigest:
    """HMAC (RFC 2104) over any registered algorithm.

    The Keccak objects from PyCryptodomex cannot be copied, which rules out the
    standard-library ``hmac`` module; the two-pass construction only needs
    ``update`` and ``digest``.
    """

    def __init__(self, algorithm: Algorithm, key: bytes):
        block = algorithm.block_size
        if len(key) > block:
            h = algorithm.factory()
            h.update(key)
            key = h.digest()
        key = key.ljust(block, b"\x00")
        self._algorithm = algorithm
        self._outer_key = bytes(b ^ 0x5C for b in key)
        self._inner = algorithm.factory()
        self._inner.update(bytes(b ^ 0x36 for b in key))

    def update(self, data: bytes) -> None:
        self._inner.update(data)

    def digest(self) -> bytes:
        outer = self._algorithm.factory()
        outer.update(self._outer_key)
        outer.update(self._inner.digest())
        return outer.digest()

    def hexdigest(self) -> str:
        return self.digest().hex()


def _as_key(key: Union[str, bytes, None]) -> bytes:
    if not key:
        return b""
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def new_digest(algorithm: Union[str, Algorithm], key: Union[str, bytes, None] = None):
    """Create a hashing object; keyed (HMAC) when ``key`` is non-empty."""
    alg = algorithm if isinstance(algorithm, Algorithm) else get_algorithm(algorithm)
    raw_key = _as_key(key)
    if raw_key:
        return KeyedDigest(alg, raw_key)
    return alg.factory()


def compute_digest(
    path: str,
    algorithm: Union[str, Algorithm],
    key: Union[str, bytes, None] = None,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """Stream a file through the selected digest and return lower-case hex.

    Args:
        path: File to read.
        algorithm: Registered algorithm name or :class:`Algorithm`.
        key: HMAC key; empty or None selects the plain digest.
        chunk_size: Bytes read per step.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    h = new_digest(algorithm, key)
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            h.update(chunk)
    return h.digest().hex()


def digest_bytes(data: bytes, algorithm: Union[str, Algorithm], key: Optional[Union[str, bytes]] = None) -> str:
    h = new_digest(algorithm, key)
    h.update(data)
    return h.digest().hex()
