# This is the whole point of this module.
# ruff: noqa: A001

"""Aliases for various Solidity types."""

from collections.abc import Sequence

from ._abi_types import AddressType, Bool, Bytes, Int, String, Struct, Type, UInt
from ._entities import NetworkId
from ._human_readable import parse_type

_PyInt = int
_PyBool = bool


def uint(bits: _PyInt) -> UInt:
    """Returns the ``uint<bits>`` type."""
    return UInt(bits)


def int(bits: _PyInt) -> Int:
    """Returns the ``int<bits>`` type."""
    return Int(bits)


def bytes(size: None | _PyInt = None, *, as_hex: _PyBool = False) -> Bytes:
    """
    Returns the ``bytes<size>`` type, or ``bytes`` if ``size`` is ``None``.
    If ``as_hex`` is ``True``, the values will be decoded as hex strings.
    """
    return Bytes(size, as_hex=as_hex)


def struct(**kwargs: Type) -> Struct:
    """Returns the structure type with given fields."""
    return Struct(kwargs)


def tuple_(*types: Type) -> Struct:
    """Returns the structure type with given anonymous fields."""
    return Struct(list(types))


def qualified_address(network_id: NetworkId) -> AddressType:
    """Returns the ``address`` type decoding to network-qualified strings."""
    return AddressType(network_id)


def parse(type_str: str) -> Type:
    """
    Returns the type corresponding to a string in the human-readable format
    (e.g. ``"(uint256 amount, address[] to)[2]"``).
    """
    return parse_type(type_str)


def types(*type_strs: str) -> Sequence[Type]:
    """Returns a list of types parsed from the given strings (see :py:func:`parse`)."""
    return [parse(type_str) for type_str in type_strs]


address: AddressType = AddressType()
"""
``address`` type.
"""

string: String = String()
"""``string`` type."""

bool: Bool = Bool()
"""``bool`` type."""
