"""
Argon2id hash records.

A record is the PHC-style string

    $argon2id$v=19$m=<memory KiB>,t=<iterations>,p=<lanes>$<salt>$<digest>

with salt and digest in unpadded standard base64. The cost parameters travel with the
record, so records created under older defaults stay verifiable after the defaults change.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import re
import secrets
from dataclasses import dataclass

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

ALGORITHM = "argon2id"

DEFAULT_MEMORY_COST = 64 * 1024  # KiB
DEFAULT_TIME_COST = 1
DEFAULT_PARALLELISM = 1
DEFAULT_SALT_LENGTH = 16
DEFAULT_HASH_LENGTH = 32

MIN_SALT_LENGTH = 8  # argon2 refuses shorter salts
MAX_COST = 2**32 - 1  # m and t are uint32 in libargon2
MAX_PARALLELISM = 255

_NUM_SECTIONS = 6
_PARAMS_RE = re.compile(r"m=(\d+),t=(\d+),p=(\d+)")
_VERSION_RE = re.compile(r"v=(\d+)")


class MalformedHashRecord(ValueError):
    """The stored string is not an argon2id record this codec can read."""


@dataclass(frozen=True)
class Argon2Params:
    memory_cost: int = DEFAULT_MEMORY_COST
    time_cost: int = DEFAULT_TIME_COST
    parallelism: int = DEFAULT_PARALLELISM
    salt_length: int = DEFAULT_SALT_LENGTH
    hash_length: int = DEFAULT_HASH_LENGTH

    def same_cost(self, other: Argon2Params) -> bool:
        """True if both parameter sets produce digests of equal strength and shape."""
        return (
            self.memory_cost == other.memory_cost
            and self.time_cost == other.time_cost
            and self.parallelism == other.parallelism
            and self.salt_length == other.salt_length
            and self.hash_length == other.hash_length
        )


DEFAULT_PARAMS = Argon2Params()


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    if not value:
        raise MalformedHashRecord("empty base64 section")
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedHashRecord("invalid base64 section") from e
    # Reject non-canonical encodings (stray trailing bits)
    if _b64encode(raw) != value:
        raise MalformedHashRecord("non-canonical base64 section")
    return raw


def hash_with_salt(secret: str, params: Argon2Params, salt: bytes) -> bytes:
    """Deterministic argon2id digest of secret under params and salt."""
    return hash_secret_raw(
        secret.encode("utf-8", "surrogatepass"),
        salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=params.hash_length,
        type=Type.ID,
        version=ARGON2_VERSION,
    )


def encode_hash_with_salt(secret: str, params: Argon2Params, salt: bytes) -> str:
    digest = hash_with_salt(secret, params, salt)
    return "${}$v={}$m={},t={},p={}${}${}".format(
        ALGORITHM,
        ARGON2_VERSION,
        params.memory_cost,
        params.time_cost,
        params.parallelism,
        _b64encode(salt),
        _b64encode(digest),
    )


def encode_hash(secret: str, params: Argon2Params = DEFAULT_PARAMS) -> str:
    """Hash secret under a fresh random salt and return the self-describing record."""
    salt = secrets.token_bytes(params.salt_length)
    return encode_hash_with_salt(secret, params, salt)


def decode_hash(record: str) -> tuple[Argon2Params, bytes, bytes]:
    """Parse a record into (params, salt, digest). Raises MalformedHashRecord."""
    if not isinstance(record, str):
        raise MalformedHashRecord("hash record must be a string")
    sections = record.split("$")
    if len(sections) != _NUM_SECTIONS or sections[0] != "":
        raise MalformedHashRecord("unexpected number of sections")
    if sections[1] != ALGORITHM:
        raise MalformedHashRecord(f"unsupported algorithm {sections[1]!r}")

    version = _VERSION_RE.fullmatch(sections[2])
    if version is None or int(version.group(1)) != ARGON2_VERSION:
        raise MalformedHashRecord("incompatible argon2 version")

    cost = _PARAMS_RE.fullmatch(sections[3])
    if cost is None:
        raise MalformedHashRecord("unrecognized parameter block")
    memory_cost, time_cost, parallelism = (int(v) for v in cost.groups())
    if not 1 <= time_cost <= MAX_COST or not 1 <= parallelism <= MAX_PARALLELISM:
        raise MalformedHashRecord("parameters out of range")
    if not 8 * parallelism <= memory_cost <= MAX_COST:
        raise MalformedHashRecord("parameters out of range")

    salt = _b64decode(sections[4])
    digest = _b64decode(sections[5])
    if len(salt) < MIN_SALT_LENGTH or len(digest) < 4:
        raise MalformedHashRecord("salt or digest too short")

    params = Argon2Params(
        memory_cost=memory_cost,
        time_cost=time_cost,
        parallelism=parallelism,
        salt_length=len(salt),
        hash_length=len(digest),
    )
    return params, salt, digest


def verify_secret(secret: str, record: str) -> bool:
    """Recompute the digest of secret with the record's own parameters; constant-time compare."""
    params, salt, expected = decode_hash(record)
    try:
        given = hash_with_salt(secret, params, salt)
    except (HashingError, OverflowError) as e:
        raise MalformedHashRecord("record parameters rejected by argon2") from e
    return hmac.compare_digest(given, expected)


def needs_rehash(record: str, params: Argon2Params = DEFAULT_PARAMS) -> bool:
    """True when record was created with parameters other than params."""
    current, _, _ = decode_hash(record)
    return not current.same_cost(params)
