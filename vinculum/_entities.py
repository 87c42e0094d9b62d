from abc import ABC, abstractmethod
from typing import Any, TypeVar, cast

from eth_utils import to_canonical_address, to_checksum_address

TypedDataLike = TypeVar("TypedDataLike", bound="TypedData")

NetworkId = int | str
"""A network identifier: either a numeric chain id, or an address prefix (``cfxtest``)."""

MAINNET_ID = 1029
TESTNET_ID = 1

_BASE32_ALPHABET = "abcdefghjkmnprstuvwxyz0123456789"
_BASE32_INDEX = {char: index for index, char in enumerate(_BASE32_ALPHABET)}
_VERSION_BYTE = b"\x00"
_CHECKSUM_WORDS = 8
_ADDRESS_LENGTH = 20


class TypedData(ABC):
    def __init__(self, value: bytes):
        self._value = value
        if not isinstance(value, bytes):
            raise TypeError(
                f"{self.__class__.__name__} must be a bytestring, got {type(value).__name__}"
            )
        if len(value) != self._length():
            raise ValueError(
                f"{self.__class__.__name__} must be {self._length()} bytes long, got {len(value)}"
            )

    @abstractmethod
    def _length(self) -> int:
        """Returns the length of this type's values representation in bytes."""

    def __bytes__(self) -> bytes:
        return self._value

    def __hash__(self) -> int:
        return hash(self._value)

    def _check_type(self: TypedDataLike, other: Any) -> TypedDataLike:
        if type(self) != type(other):
            raise TypeError(f"Incompatible types: {type(self).__name__} and {type(other).__name__}")
        return cast("TypedDataLike", other)

    def __eq__(self, other: object) -> bool:
        return self._value == self._check_type(other)._value

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(bytes.fromhex("{self._value.hex()}"))'


class Address(TypedData):
    """Represents a contract or an account address."""

    @classmethod
    def from_hex(cls, address_str: str) -> "Address":
        """
        Creates the address from a hex-encoded string
        (with or without the ``0x`` prefix, checksummed or not).
        """
        try:
            return cls(to_canonical_address(address_str))
        except ValueError as exc:
            raise ValueError(f"Invalid hex address: {address_str!r}") from exc

    @classmethod
    def from_base32(cls, address_str: str) -> "Address":
        """Creates the address from a network-qualified string (``cfx:aa...``)."""
        _network_id, address_bytes = decode_base32(address_str)
        return cls(address_bytes)

    @classmethod
    def from_str(cls, address_str: str) -> "Address":
        """Creates the address from either a hex or a network-qualified string."""
        if ":" in address_str:
            return cls.from_base32(address_str)
        return cls.from_hex(address_str)

    def _length(self) -> int:
        return _ADDRESS_LENGTH

    @property
    def checksum(self) -> str:
        """Returns the checksummed hex representation of the address."""
        return to_checksum_address(self._value)

    def to_base32(self, network_id: NetworkId) -> str:
        """Returns the network-qualified representation of the address."""
        return encode_base32(self._value, network_id)

    def __str__(self) -> str:
        return self.checksum

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}.from_hex({self.checksum})"


class LogTopic(TypedData):
    """A log topic for log filtering."""

    def _length(self) -> int:
        return 32


def network_prefix(network_id: NetworkId) -> str:
    """Returns the address prefix corresponding to the network."""
    if isinstance(network_id, str):
        prefix = network_id.lower()
        if prefix in ("cfx", "cfxtest") or (prefix.startswith("net") and prefix[3:].isdigit()):
            return prefix
        raise ValueError(f"Unknown network prefix: {network_id}")

    if isinstance(network_id, bool) or not isinstance(network_id, int):
        raise TypeError(
            f"Network id must be an integer or a string, got {type(network_id).__name__}"
        )
    if network_id == MAINNET_ID:
        return "cfx"
    if network_id == TESTNET_ID:
        return "cfxtest"
    if network_id <= 0 or network_id >= 2**32:
        raise ValueError(f"Network id out of range: {network_id}")
    return f"net{network_id}"


def _network_id_from_prefix(prefix: str) -> int:
    if prefix == "cfx":
        return MAINNET_ID
    if prefix == "cfxtest":
        return TESTNET_ID
    if prefix.startswith("net") and prefix[3:].isdigit():
        return int(prefix[3:])
    raise ValueError(f"Unknown network prefix: {prefix}")


def _polymod(values: list[int]) -> int:
    checksum = 1
    for value in values:
        high = checksum >> 35
        checksum = ((checksum & 0x07FFFFFFFF) << 5) ^ value
        if high & 0x01:
            checksum ^= 0x98F2BC8E61
        if high & 0x02:
            checksum ^= 0x79B76D99E2
        if high & 0x04:
            checksum ^= 0xF33E5FB3C4
        if high & 0x08:
            checksum ^= 0xAE2EABE2A8
        if high & 0x10:
            checksum ^= 0x1E4F43E470
    return checksum ^ 1


def _convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, *, pad: bool) -> list[int]:
    accumulator = 0
    bits = 0
    result = []
    max_value = (1 << to_bits) - 1
    for value in data:
        accumulator = (accumulator << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((accumulator >> bits) & max_value)
    if pad:
        if bits:
            result.append((accumulator << (to_bits - bits)) & max_value)
    elif bits >= from_bits or ((accumulator << (to_bits - bits)) & max_value):
        raise ValueError("Non-zero padding in the address payload")
    return result


def _checksum_words(prefix: str, payload: list[int]) -> list[int]:
    prefix_words = [ord(char) & 0x1F for char in prefix]
    checksum = _polymod([*prefix_words, 0, *payload, *([0] * _CHECKSUM_WORDS)])
    return [(checksum >> (5 * (_CHECKSUM_WORDS - 1 - i))) & 0x1F for i in range(_CHECKSUM_WORDS)]


def encode_base32(address_bytes: bytes, network_id: NetworkId) -> str:
    """
    Encodes a 20-byte address in the network-qualified base32 format
    (``<prefix>:<payload><checksum>``).
    """
    if len(address_bytes) != _ADDRESS_LENGTH:
        raise ValueError(f"Address must be {_ADDRESS_LENGTH} bytes long, got {len(address_bytes)}")
    prefix = network_prefix(network_id)
    payload = _convert_bits(_VERSION_BYTE + address_bytes, 8, 5, pad=True)
    words = payload + _checksum_words(prefix, payload)
    return prefix + ":" + "".join(_BASE32_ALPHABET[word] for word in words)


def decode_base32(address_str: str) -> tuple[int, bytes]:
    """
    Decodes a network-qualified address, returning the network id and the address bytes.
    Verbose forms (``CFX:TYPE.USER:AAJG...``) are accepted.
    """
    if address_str != address_str.lower() and address_str != address_str.upper():
        raise ValueError(f"Mixed case in the address: {address_str}")

    parts = address_str.lower().split(":")
    if len(parts) < 2:  # noqa: PLR2004
        raise ValueError(f"Address is missing the network prefix: {address_str}")
    prefix, body = parts[0], parts[-1]

    network_id = _network_id_from_prefix(prefix)

    try:
        words = [_BASE32_INDEX[char] for char in body]
    except KeyError as exc:
        raise ValueError(f"Invalid character in the address: {exc.args[0]!r}") from exc

    payload, checksum = words[:-_CHECKSUM_WORDS], words[-_CHECKSUM_WORDS:]
    if _checksum_words(prefix, payload) != checksum:
        raise ValueError(f"Invalid address checksum: {address_str}")

    decoded = bytes(_convert_bits(payload, 5, 8, pad=False))
    if len(decoded) != _ADDRESS_LENGTH + 1 or decoded[:1] != _VERSION_BYTE:
        raise ValueError(f"Invalid address payload: {address_str}")

    return network_id, decoded[1:]
