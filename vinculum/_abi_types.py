import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from functools import cached_property
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from ._entities import Address, NetworkId

ABI_JSON = Any
"""JSON-like structures of a contract ABI."""


class ABIDecodingError(Exception):
    """Raised when ABI-encoded data does not match the types it is decoded with."""


class MalformedABI(ValueError):
    """Raised when a fragment definition or a type string is structurally invalid."""


def decode_abi(types: Sequence[str], data: bytes) -> tuple[Any, ...]:
    try:
        return decode(list(types), data)
    except (DecodingError, OverflowError, UnicodeDecodeError) as exc:
        # `eth_abi` lets some malformed payloads through as builtin exceptions
        signature = ",".join(types)
        raise ABIDecodingError(
            f"Could not decode the data with the expected signature ({signature}): {exc}"
        ) from exc


def _array_suffix(size: None | int) -> str:
    return f"[{size}]" if size else "[]"


class Type(ABC):
    """
    A Solidity type that values can be encoded to and decoded from.

    Subclasses validate Python values in ``_normalize()`` (before encoding)
    and in ``_denormalize()`` (after decoding, where the decoded form may be converted
    into a friendlier one).
    """

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """The type name used in signatures and passed to ``eth_abi``, e.g. ``uint256[2]``."""
        ...

    @abstractmethod
    def _normalize(self, val: Any) -> Any: ...

    @abstractmethod
    def _denormalize(self, val: Any) -> Any: ...

    @property
    def is_dynamic(self) -> bool:
        """Whether the encoded width of this type depends on the value."""
        return False

    def encode(self, val: Any) -> bytes:
        """Encodes an already normalized value."""
        return encode([self.canonical_form], [val])

    def decode(self, val: bytes) -> Any:
        """Decodes a single value without denormalizing it."""
        return decode_abi([self.canonical_form], val)[0]

    def encode_to_topic(self, val: Any) -> bytes:
        """
        Encodes a value of an indexed event parameter.

        Value types take a regular 32-byte encoding. Strings, dynamic bytes, arrays
        and structs are hashed: their elements are packed in place
        (see ``_topic_packed``) and the result goes through keccak.
        """
        return self._topic_word(self._normalize(val))

    def _topic_word(self, val: Any) -> bytes:
        # The topic of an indexed parameter of this type
        return self.encode(val)

    def _topic_packed(self, val: Any) -> bytes:
        # The contribution of a value nested in a hashed array or struct
        return self.encode(val)

    def decode_from_topic(self, val: bytes) -> Any:
        """Recovers the value from a topic, or returns ``None`` for hashed types."""
        return self._denormalize(self.decode(val))

    def accepts(self, val: Any) -> bool:
        """Whether ``val`` can be encoded as this type."""
        try:
            self._normalize(val)
        except (TypeError, ValueError):
            return False
        return True

    @property
    def json_type(self) -> str:
        """The type as it appears in the ``type`` field of a JSON ABI entry."""
        return self.canonical_form

    @property
    def json_components(self) -> None | list[ABI_JSON]:
        """The ``components`` field of a JSON ABI entry, if the type requires one."""
        return None

    @property
    def json_annotations(self) -> dict[str, ABI_JSON]:
        """The decoding options of the type, as extra fields of a JSON ABI entry."""
        return {}

    def __str__(self) -> str:
        return self.canonical_form

    def __getitem__(self, array_size: int | Any) -> "Array":
        # `abi.uint(8)[2]` is a fixed size array, `abi.uint(8)[...]` a dynamic one
        if array_size is Ellipsis:
            return Array(self, None)
        if isinstance(array_size, int):
            return Array(self, array_size)
        raise TypeError(f"Invalid array size specifier type: {type(array_size).__name__}")

    def __hash__(self) -> int:
        return hash(self.canonical_form)


class _Integer(Type):
    _label: str

    def __init__(self, bits: int):
        if not (0 < bits <= 256 and bits % 8 == 0):  # noqa: PLR2004
            raise ValueError(f"Incorrect `{self._label}` bit size: {bits}")
        self._bits = bits

    @property
    def canonical_form(self) -> str:
        return f"{self._label}{self._bits}"

    @abstractmethod
    def _check_range(self, val: int) -> None: ...

    def _check(self, val: Any) -> int:
        # Booleans are integers to Python, but not to the ABI
        if isinstance(val, bool) or not isinstance(val, int):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to an integer, got {type(val).__name__}"
            )
        self._check_range(val)
        return int(val)

    def _normalize(self, val: Any) -> int:
        return self._check(val)

    def _denormalize(self, val: Any) -> int:
        return self._check(val)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, _Integer) and type(other) is type(self) and self._bits == other._bits
        )

    __hash__ = Type.__hash__


class UInt(_Integer):
    """``uint<bits>``."""

    _label = "uint"

    def _check_range(self, val: int) -> None:
        if val < 0:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a non-negative integer, got {val}"
            )
        if val.bit_length() > self._bits:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to an unsigned integer "
                f"under {self._bits} bits, got {val}"
            )


class Int(_Integer):
    """``int<bits>``, two's complement."""

    _label = "int"

    def _check_range(self, val: int) -> None:
        bound = 1 << (self._bits - 1)
        if not -bound <= val < bound:
            raise ValueError(
                f"`{self.canonical_form}` must correspond to a signed integer "
                f"under {self._bits} bits, got {val}"
            )


class Bytes(Type):
    """
    ``bytes<size>``, or dynamic ``bytes`` when ``size`` is ``None``.

    With ``as_hex=True`` decoded values are ``0x``-prefixed hex strings.
    """

    def __init__(self, size: None | int = None, *, as_hex: bool = False):
        if size is not None and not 0 < size <= 32:  # noqa: PLR2004
            raise ValueError(f"Incorrect `bytes` size: {size}")
        self._size = size
        self.as_hex = as_hex

    @property
    def canonical_form(self) -> str:
        return "bytes" if self._size is None else f"bytes{self._size}"

    @property
    def is_dynamic(self) -> bool:
        return self._size is None

    def _check(self, val: Any) -> bytes:
        if not isinstance(val, bytes):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to a bytestring, "
                f"got {type(val).__name__}"
            )
        if self._size is not None and len(val) != self._size:
            raise ValueError(f"Expected {self._size} bytes, got {len(val)}")
        return val

    def _normalize(self, val: Any) -> bytes:
        return self._check(val)

    def _denormalize(self, val: Any) -> bytes | str:
        data = self._check(val)
        return "0x" + data.hex() if self.as_hex else data

    def _topic_word(self, val: bytes) -> bytes:
        return keccak(val) if self._size is None else super()._topic_word(val)

    def _topic_packed(self, val: bytes) -> bytes:
        if self._size is not None:
            return super()._topic_packed(val)
        # Zero-padded to a whole number of 32-byte words, no length prefix
        return val.ljust(-(-len(val) // 32) * 32, b"\x00")

    def decode_from_topic(self, val: bytes) -> None | bytes | str:
        return None if self._size is None else super().decode_from_topic(val)

    @property
    def json_annotations(self) -> dict[str, ABI_JSON]:
        return {"decodeToHex": True} if self.as_hex else {}

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Bytes) and (self._size, self.as_hex) == (other._size, other.as_hex)
        )

    __hash__ = Type.__hash__


class AddressType(Type):
    """
    ``address``. Values are :py:class:`~vinculum.Address` objects
    or strings (hex or base32) on input.

    With ``network_id`` set, decoded values are base32 strings for that network
    instead of :py:class:`~vinculum.Address` objects.
    """

    def __init__(self, network_id: None | NetworkId = None):
        self.network_id = network_id

    @property
    def canonical_form(self) -> str:
        return "address"

    def _normalize(self, val: Any) -> bytes:
        if isinstance(val, str):
            val = Address.from_str(val)
        if not isinstance(val, Address):
            raise TypeError(
                f"`address` must correspond to an `Address` or a `str`-type value, "
                f"got {type(val).__name__}"
            )
        return bytes(val)

    def _denormalize(self, val: Any) -> Address | str:
        address = Address.from_hex(val) if isinstance(val, str) else Address(val)
        return address if self.network_id is None else address.to_base32(self.network_id)

    @property
    def json_annotations(self) -> dict[str, ABI_JSON]:
        return {} if self.network_id is None else {"networkId": self.network_id}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AddressType) and self.network_id == other.network_id

    __hash__ = Type.__hash__


class String(Type):
    """``string``. In topics it is hashed the same way as dynamic ``bytes`` of its UTF-8 form."""

    @property
    def canonical_form(self) -> str:
        return "string"

    @property
    def is_dynamic(self) -> bool:
        return True

    def _check(self, val: Any) -> str:
        if not isinstance(val, str):
            raise TypeError(
                f"`string` must correspond to a `str`-type value, got {type(val).__name__}"
            )
        return val

    def _normalize(self, val: Any) -> str:
        return self._check(val)

    def _denormalize(self, val: Any) -> str:
        return self._check(val)

    def _topic_word(self, val: str) -> bytes:
        return Bytes()._topic_word(val.encode())

    def _topic_packed(self, val: str) -> bytes:
        return Bytes()._topic_packed(val.encode())

    def decode_from_topic(self, _val: bytes) -> None:
        return None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, String)

    __hash__ = Type.__hash__


class Bool(Type):
    """``bool``."""

    @property
    def canonical_form(self) -> str:
        return "bool"

    def _check(self, val: Any) -> bool:
        if not isinstance(val, bool):
            raise TypeError(
                f"`bool` must correspond to a `bool`-type value, got {type(val).__name__}"
            )
        return val

    def _normalize(self, val: Any) -> bool:
        return self._check(val)

    def _denormalize(self, val: Any) -> bool:
        return self._check(val)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bool)

    __hash__ = Type.__hash__


def _check_sequence(val: Any, expected_len: None | int) -> None:
    if isinstance(val, (str, bytes)) or not isinstance(val, Iterable):
        raise TypeError(f"Expected an iterable, got {type(val).__name__}")
    if expected_len is not None and len(val) != expected_len:
        raise ValueError(f"Expected {expected_len} elements, got {len(val)}")


class Array(Type):
    """``<element>[<size>]``, or ``<element>[]`` when ``size`` is ``None``."""

    def __init__(self, element_type: Type, size: None | int = None):
        if size is not None and size <= 0:
            raise ValueError(f"Incorrect array size: {size}")
        self._element_type = element_type
        self._size = size

    @cached_property
    def canonical_form(self) -> str:
        return self._element_type.canonical_form + _array_suffix(self._size)

    @property
    def is_dynamic(self) -> bool:
        return self._size is None or self._element_type.is_dynamic

    def _normalize(self, val: Any) -> list[Any]:
        _check_sequence(val, self._size)
        return [self._element_type._normalize(item) for item in val]

    def _denormalize(self, val: Any) -> list[Any]:
        _check_sequence(val, self._size)
        return [self._element_type._denormalize(item) for item in val]

    def _topic_word(self, val: Any) -> bytes:
        return keccak(self._topic_packed(val))

    def _topic_packed(self, val: Any) -> bytes:
        return b"".join(self._element_type._topic_packed(item) for item in val)

    def decode_from_topic(self, _val: bytes) -> None:
        return None

    @property
    def json_type(self) -> str:
        return self._element_type.json_type + _array_suffix(self._size)

    @property
    def json_components(self) -> None | list[ABI_JSON]:
        return self._element_type.json_components

    @property
    def json_annotations(self) -> dict[str, ABI_JSON]:
        return self._element_type.json_annotations

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Array):
            return False
        return (self._element_type, self._size) == (other._element_type, other._size)

    __hash__ = Type.__hash__


class Struct(Type):
    """
    A tuple type, ``(<type>,<type>,...)``.

    Built from a mapping, it has named fields, takes either a mapping or a sequence
    and decodes into a ``dict``. Built from a sequence, it has anonymous fields
    and decodes into a ``tuple``.
    """

    def __init__(self, fields: Mapping[str, Type] | Sequence[Type]):
        self._names: None | tuple[str, ...]
        if isinstance(fields, Mapping):
            self._names = tuple(fields)
            self._types = tuple(fields.values())
        else:
            self._names = None
            self._types = tuple(fields)

    @cached_property
    def canonical_form(self) -> str:
        return canonical_signature(self._types)

    @property
    def is_dynamic(self) -> bool:
        return any(tp.is_dynamic for tp in self._types)

    def _normalize(self, val: Any) -> list[Any]:
        if isinstance(val, Mapping):
            if self._names is None:
                raise TypeError("A struct with anonymous fields cannot be created from a mapping")
            if set(val) != set(self._names):
                raise ValueError(f"Expected fields {list(self._names)}, got {list(val)}")
            val = [val[name] for name in self._names]
        _check_sequence(val, len(self._types))
        return [tp._normalize(item) for tp, item in zip(self._types, val, strict=True)]

    def _denormalize(self, val: Any) -> dict[str, Any] | tuple[Any, ...]:
        _check_sequence(val, len(self._types))
        items = tuple(tp._denormalize(item) for tp, item in zip(self._types, val, strict=True))
        if self._names is None:
            return items
        return dict(zip(self._names, items, strict=True))

    def _topic_word(self, val: Any) -> bytes:
        return keccak(self._topic_packed(val))

    def _topic_packed(self, val: Any) -> bytes:
        return b"".join(tp._topic_packed(item) for tp, item in zip(self._types, val, strict=True))

    def decode_from_topic(self, _val: bytes) -> None:
        return None

    @property
    def json_type(self) -> str:
        return "tuple"

    @property
    def json_components(self) -> list[ABI_JSON]:
        names = self._names or ("",) * len(self._types)
        return [param_to_json(name, tp) for name, tp in zip(names, self._types, strict=True)]

    def __str__(self) -> str:
        if self._names is None:
            return self.canonical_form
        fields = [f"{tp} {name}" for name, tp in zip(self._names, self._types, strict=True)]
        return "(" + ", ".join(fields) + ")"

    def __eq__(self, other: object) -> bool:
        # Field order matters, and so do the names
        if not isinstance(other, Struct):
            return False
        return (self._names, self._types) == (other._names, other._types)

    __hash__ = Type.__hash__


def param_to_json(name: None | str, tp: Type) -> ABI_JSON:
    """Returns the JSON ABI entry of a single parameter."""
    entry: dict[str, ABI_JSON] = {"name": name or "", "type": tp.json_type}
    components = tp.json_components
    if components is not None:
        entry["components"] = components
    entry.update(tp.json_annotations)
    return entry


_UINT_RE = re.compile(r"uint(\d*)")
_INT_RE = re.compile(r"int(\d*)")
_BYTES_RE = re.compile(r"bytes(\d*)")
# Splits off the outermost array suffix: `uint8[2][]` -> (`uint8[2]`, `[]`, None)
_ARRAY_RE = re.compile(r"^([\w\d\[\]]*?)(\[(\d+)?\])?$")

_SIMPLE_TYPES: dict[str, Type] = {"string": String(), "bool": Bool()}


def type_from_abi_string(
    abi_string: str, *, network_id: None | NetworkId = None, as_hex: bool = False
) -> Type:
    """
    Returns the elementary type for a JSON ABI type name.
    ``networkId`` and ``decodeToHex`` annotations only affect ``address`` and ``bytes``.
    """
    if abi_string in _SIMPLE_TYPES:
        return _SIMPLE_TYPES[abi_string]
    if abi_string == "address":
        return AddressType(network_id)
    if match := _UINT_RE.fullmatch(abi_string):
        return UInt(int(match.group(1) or 256))
    if match := _INT_RE.fullmatch(abi_string):
        return Int(int(match.group(1) or 256))
    if match := _BYTES_RE.fullmatch(abi_string):
        return Bytes(int(match.group(1)) if match.group(1) else None, as_hex=as_hex)
    raise MalformedABI(f"Unknown type: {abi_string}")


def dispatch_type(abi_entry: Mapping[str, ABI_JSON]) -> Type:
    """Builds the type of a (possibly annotated) JSON ABI parameter entry."""
    type_str = abi_entry["type"]
    match = _ARRAY_RE.match(type_str)
    if match is None:
        raise MalformedABI(f"Incorrect type format: {type_str}")

    base, suffix, size = match.groups()

    if suffix:
        element_type = dispatch_type({**abi_entry, "type": base})
        return Array(element_type, None if size is None else int(size))

    if base == "tuple":
        if "components" not in abi_entry:
            raise MalformedABI("A `tuple` type entry must have `components`")
        fields = dispatch_parameter_types(abi_entry["components"])
        return Struct(fields if isinstance(fields, dict) else [tp for _, tp in fields])

    try:
        return type_from_abi_string(
            base,
            network_id=abi_entry.get("networkId"),
            as_hex=abi_entry.get("decodeToHex", False),
        )
    except ValueError as exc:
        raise MalformedABI(str(exc)) from exc


def dispatch_parameter_types(
    abi_entry: Iterable[Mapping[str, ABI_JSON]],
) -> dict[str, Type] | list[tuple[None | str, Type]]:
    """
    Returns a dictionary of types if all the parameters are named and the names are distinct,
    otherwise a list of pairs of (possibly missing) names and types.
    """
    entries = list(abi_entry)
    names = [entry.get("name") or None for entry in entries]
    types = [dispatch_type(entry) for entry in entries]

    named = [name for name in names if name is not None]
    if len(named) != len(set(named)):
        raise MalformedABI("All named ABI entries must have distinct names")
    if len(named) == len(entries):
        return dict(zip(named, types, strict=True))
    return list(zip(names, types, strict=True))


def canonical_signature(types: Iterable[Type]) -> str:
    return "(" + ",".join(tp.canonical_form for tp in types) + ")"


def encode_args(*types_and_args: tuple[Type, Any]) -> bytes:
    """Normalizes and encodes ``(type, value)`` pairs as a single argument list."""
    return encode(
        [tp.canonical_form for tp, _ in types_and_args],
        [tp._normalize(arg) for tp, arg in types_and_args],
    )


def decode_args(types: Iterable[Type], data: bytes) -> tuple[Any, ...]:
    """Decodes an argument list and denormalizes each value."""
    types = list(types)
    values = decode_abi([tp.canonical_form for tp in types], data)
    return tuple(tp._denormalize(value) for tp, value in zip(types, values, strict=True))
