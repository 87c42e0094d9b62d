import os

import pytest
from eth_utils import keccak

from vinculum import Address, MalformedABI, abi
from vinculum._abi_types import (
    ABIDecodingError,
    AddressType,
    decode_args,
    dispatch_parameter_types,
    dispatch_type,
    encode_args,
    param_to_json,
    type_from_abi_string,
)


def test_uint() -> None:
    u16 = abi.uint(16)
    for val in [0, 1, 2**16 - 1]:
        assert u16._normalize(val) == val
        assert u16._denormalize(val) == val

    assert str(u16) == "uint16"
    assert u16 == abi.uint(16)
    assert u16 != abi.uint(24)
    assert u16 != abi.int(16)
    assert hash(u16) == hash(abi.uint(16))

    for bit_size in [-1, 0, 255, 512]:
        with pytest.raises(ValueError, match=f"Incorrect `uint` bit size: {bit_size}"):
            abi.uint(bit_size)

    u128 = abi.uint(128)
    with pytest.raises(TypeError, match="`uint128` must correspond to an integer, got bool"):
        u128._normalize(False)
    with pytest.raises(TypeError, match="`uint128` must correspond to an integer, got str"):
        u128._normalize("1")
    with pytest.raises(
        ValueError, match="`uint128` must correspond to a non-negative integer, got -1"
    ):
        u128._normalize(-1)

    too_big = 1 << 128
    message = f"`uint128` must correspond to an unsigned integer under 128 bits, got {too_big}"
    with pytest.raises(ValueError, match=message):
        u128._normalize(too_big)
    assert u128.accepts(too_big - 1)


def test_int() -> None:
    i16 = abi.int(16)
    for val in [-(2**15), -1, 0, 2**15 - 1]:
        assert i16._normalize(val) == val
        assert i16._denormalize(val) == val

    assert str(i16) == "int16"
    assert i16 == abi.int(16)
    assert i16 != abi.int(32)

    for bit_size in [-1, 0, 255, 512]:
        with pytest.raises(ValueError, match=f"Incorrect `int` bit size: {bit_size}"):
            abi.int(bit_size)

    i128 = abi.int(128)
    with pytest.raises(TypeError, match="`int128` must correspond to an integer, got bool"):
        i128._normalize(True)

    for val in [-(2**127) - 1, 2**127]:
        message = f"`int128` must correspond to a signed integer under 128 bits, got {val}"
        with pytest.raises(ValueError, match=message):
            i128._normalize(val)


def test_bytes() -> None:
    b4 = abi.bytes(4)
    assert b4._normalize(b"\x00\x01\x02\x03") == b"\x00\x01\x02\x03"
    assert b4._denormalize(b"abcd") == b"abcd"
    assert abi.bytes()._normalize(b"") == b""
    assert abi.bytes()._denormalize(b"any length") == b"any length"

    assert str(b4) == "bytes4"
    assert str(abi.bytes()) == "bytes"
    assert abi.bytes(32) == abi.bytes(32)
    assert abi.bytes(32) != abi.bytes()
    assert abi.bytes(32) != abi.bytes(32, as_hex=True)

    for size in [-1, 0, 33]:
        with pytest.raises(ValueError, match=f"Incorrect `bytes` size: {size}"):
            abi.bytes(size)

    with pytest.raises(TypeError, match="`bytes` must correspond to a bytestring, got str"):
        abi.bytes()._normalize("0x01")
    with pytest.raises(ValueError, match="Expected 4 bytes, got 3"):
        b4._normalize(b"abc")


def test_bytes_as_hex() -> None:
    # The input is still a bytestring, only the decoded values are affected
    assert abi.bytes(as_hex=True)._normalize(b"\x01\x02") == b"\x01\x02"
    assert abi.bytes(as_hex=True)._denormalize(b"\x01\x02") == "0x0102"
    assert abi.bytes(2, as_hex=True)._denormalize(b"\xab\xcd") == "0xabcd"
    assert decode_args([abi.bytes(as_hex=True)], abi.bytes().encode(b"\xff")) == ("0xff",)


def test_address() -> None:
    raw = bytes(range(20))
    addr = Address(raw)

    # Any string form is accepted on input
    for val in [addr, addr.checksum, addr.checksum.lower(), addr.to_base32(1029)]:
        assert abi.address._normalize(val) == raw

    # `eth_abi` decodes addresses into checksummed hex strings
    assert abi.address._denormalize(raw) == addr
    assert abi.address._denormalize(addr.checksum) == addr
    assert str(abi.address) == "address"

    with pytest.raises(
        TypeError, match="`address` must correspond to an `Address` or a `str`-type value, got int"
    ):
        abi.address._normalize(1)
    with pytest.raises(ValueError, match="Invalid hex address"):
        abi.address._normalize("0x1234")


def test_qualified_address() -> None:
    addr = Address.from_hex("0x106d49f8505410eb4e671d51f7d96d2c87807b09")
    qualified = "cfx:aajg4wt2mbmbb44sp6szd783ry0jtad5bea80xdy7p"

    assert abi.qualified_address(1029)._denormalize(bytes(addr)) == qualified
    encoded = abi.address.encode(bytes(addr))
    assert decode_args([abi.qualified_address("cfx")], encoded) == (qualified,)
    assert abi.qualified_address(1029) == AddressType(1029)
    assert abi.qualified_address(1029) != abi.address
    assert abi.qualified_address(1029).canonical_form == "address"


def test_string_and_bool() -> None:
    assert abi.string._normalize("") == ""
    assert abi.string._denormalize("été") == "été"
    assert str(abi.string) == "string"
    assert abi.string.is_dynamic

    with pytest.raises(
        TypeError, match="`string` must correspond to a `str`-type value, got bytes"
    ):
        abi.string._normalize(b"text")

    assert abi.bool._normalize(False) is False
    assert abi.bool._denormalize(True) is True
    assert str(abi.bool) == "bool"
    assert not abi.bool.is_dynamic

    with pytest.raises(TypeError, match="`bool` must correspond to a `bool`-type value, got int"):
        abi.bool._normalize(0)


def test_array() -> None:
    assert abi.uint(8)[2]._normalize([1, 2]) == [1, 2]
    assert abi.uint(8)[2]._denormalize([1, 2]) == [1, 2]
    assert abi.uint(8)[...]._normalize([1, 2, 3]) == [1, 2, 3]
    assert abi.uint(8)[...]._denormalize((1, 2, 3)) == [1, 2, 3]

    assert abi.uint(8)[2].canonical_form == "uint8[2]"
    assert abi.uint(8)[...].canonical_form == "uint8[]"
    assert abi.uint(8)[2] == abi.uint(8)[2]
    assert abi.uint(8)[...] == abi.uint(8)[...]
    assert abi.uint(8)[...] != abi.uint(8)[2]

    assert not abi.uint(8)[2].is_dynamic
    assert abi.uint(8)[...].is_dynamic
    assert abi.string[2].is_dynamic

    with pytest.raises(TypeError, match="Expected an iterable, got int"):
        abi.uint(8)[1]._normalize(1)
    with pytest.raises(TypeError, match="Expected an iterable, got bytes"):
        abi.uint(8)[...]._normalize(b"\x01\x02")
    with pytest.raises(ValueError, match="Expected 2 elements, got 3"):
        abi.uint(8)[2]._normalize([1, 2, 3])


def test_struct() -> None:
    u8 = abi.uint(8)
    s1 = abi.struct(a=u8, b=abi.bool)

    s1_copy = abi.struct(a=u8, b=abi.bool)
    s2 = abi.struct(b=abi.bool, a=u8)

    assert s1._normalize(dict(b=True, a=1)) == [1, True]
    assert s1._normalize([1, True]) == [1, True]
    assert s1._denormalize([1, True]) == dict(a=1, b=True)

    assert s1.canonical_form == "(uint8,bool)"
    assert str(s1) == "(uint8 a, bool b)"
    assert s1 == s1_copy
    assert s1 != s2

    with pytest.raises(TypeError, match="Expected an iterable, got int"):
        s1._normalize(1)
    with pytest.raises(ValueError, match="Expected 2 elements, got 3"):
        s1._normalize([1, True, 2])
    with pytest.raises(ValueError, match=r"Expected fields \['a', 'b'\], got \['a', 'c'\]"):
        s1._normalize(dict(a=1, c=True))


def test_anonymous_struct() -> None:
    tp = abi.tuple_(abi.uint(8), abi.bool)

    assert tp.canonical_form == "(uint8,bool)"
    assert str(tp) == "(uint8,bool)"
    assert tp._normalize((1, True)) == [1, True]
    # Structs with anonymous fields are decoded into tuples
    assert tp._denormalize([1, True]) == (1, True)

    with pytest.raises(
        TypeError, match="A struct with anonymous fields cannot be created from a mapping"
    ):
        tp._normalize(dict(a=1, b=True))


def test_type_from_abi_string() -> None:
    assert type_from_abi_string("uint32") == abi.uint(32)
    assert type_from_abi_string("uint") == abi.uint(256)
    assert type_from_abi_string("int64") == abi.int(64)
    assert type_from_abi_string("int") == abi.int(256)
    assert type_from_abi_string("bytes11") == abi.bytes(11)
    assert type_from_abi_string("bytes") == abi.bytes()
    assert type_from_abi_string("bytes", as_hex=True) == abi.bytes(as_hex=True)
    assert type_from_abi_string("address") == abi.address
    assert type_from_abi_string("address", network_id=1) == abi.qualified_address(1)
    assert type_from_abi_string("string") == abi.string
    assert type_from_abi_string("bool") == abi.bool

    with pytest.raises(MalformedABI, match="Unknown type: uintx"):
        type_from_abi_string("uintx")
    with pytest.raises(MalformedABI, match="Unknown type: fixed128x18"):
        type_from_abi_string("fixed128x18")


def test_dispatch_type() -> None:
    assert dispatch_type(dict(type="uint8")) == abi.uint(8)
    assert dispatch_type(dict(type="uint8[2][]")) == abi.uint(8)[2][...]

    struct_array = dict(
        type="tuple[2]",
        components=[
            dict(name="field1", type="bool"),
            dict(name="field2", type="address"),
        ],
    )
    assert dispatch_type(struct_array) == abi.struct(field1=abi.bool, field2=abi.address)[2]

    anonymous_struct = dict(
        type="tuple",
        components=[dict(name="", type="bool"), dict(name="", type="uint8")],
    )
    assert dispatch_type(anonymous_struct) == abi.tuple_(abi.bool, abi.uint(8))

    # Decoding options are picked up at any nesting level
    assert dispatch_type(dict(type="address[]", networkId=1029)) == abi.qualified_address(1029)[
        ...
    ]
    assert dispatch_type(dict(type="bytes32", decodeToHex=True)) == abi.bytes(32, as_hex=True)

    with pytest.raises(MalformedABI, match=r"Incorrect type format: uint8\(2\)"):
        dispatch_type(dict(type="uint8(2)"))
    with pytest.raises(MalformedABI, match=r"Incorrect type format: uint8\(2\)"):
        dispatch_type(dict(type="uint8(2)[3]"))
    with pytest.raises(MalformedABI, match="A `tuple` type entry must have `components`"):
        dispatch_type(dict(type="tuple"))
    with pytest.raises(MalformedABI, match="Incorrect `uint` bit size: 7"):
        dispatch_type(dict(type="uint7"))


def test_dispatch_parameter_types() -> None:
    entries = [
        dict(name="param2", type="uint8"),
        dict(name="param1", type="uint16[2]"),
    ]
    # Check that the order is preserved, too
    types = dispatch_parameter_types(entries)
    assert isinstance(types, dict)
    assert list(types.items()) == [
        ("param2", abi.uint(8)),
        ("param1", abi.uint(16)[2]),
    ]

    # Some names are missing
    assert dispatch_parameter_types([dict(name="", type="uint8"), dict(name="a", type="bool")]) == [
        (None, abi.uint(8)),
        ("a", abi.bool),
    ]

    with pytest.raises(MalformedABI, match="All named ABI entries must have distinct names"):
        dispatch_parameter_types(
            [dict(name="a", type="uint8"), dict(name="a", type="bool"), dict(type="bool")]
        )


def test_param_to_json() -> None:
    tp = abi.struct(a=abi.uint(8), b=abi.tuple_(abi.address, abi.bytes())[...])[2]
    assert param_to_json("x", tp) == dict(
        name="x",
        type="tuple[2]",
        components=[
            dict(name="a", type="uint8"),
            dict(
                name="b",
                type="tuple[]",
                components=[dict(name="", type="address"), dict(name="", type="bytes")],
            ),
        ],
    )
    assert param_to_json(None, abi.uint(8)[...]) == dict(name="", type="uint8[]")

    # Decoding options are written back as annotations
    entry = dict(
        name="y",
        type="tuple",
        components=[
            dict(name="owners", type="address[]", networkId=1029),
            dict(name="data", type="bytes32", decodeToHex=True),
            dict(name="count", type="uint256"),
        ],
    )
    assert param_to_json("y", dispatch_type(entry)) == entry
    assert param_to_json("z", AddressType("cfxtest")) == dict(
        name="z", type="address", networkId="cfxtest"
    )


def test_making_arrays() -> None:
    assert abi.uint(8)[2].canonical_form == "uint8[2]"
    assert abi.uint(8)[...][3][...].canonical_form == "uint8[][3][]"

    with pytest.raises(TypeError, match="Invalid array size specifier type: float"):
        abi.uint(8)[1.0]

    with pytest.raises(ValueError, match="Incorrect array size: 0"):
        abi.uint(8)[0]


def test_normalization_roundtrip() -> None:
    struct = abi.struct(
        field1=abi.uint(8),
        field2=abi.uint(16)[2],
        field3=abi.address,
        field4=abi.struct(inner1=abi.bool, inner2=abi.string),
    )

    addr = Address(b"\x01" * 20)

    value = dict(field1=1, field2=[2, 3], field3=addr, field4=dict(inner2="abcd", inner1=True))

    expected_normalized = [1, [2, 3], bytes(addr), [True, "abcd"]]

    # normalize() loses info on struct field names
    assert struct._normalize(value) == expected_normalized

    # denormalize() should recover struct field names
    assert struct._denormalize(expected_normalized) == value


def word(val: bytes, *, right: bool = False) -> bytes:
    return val.rjust(32, b"\x00") if right else val.ljust(32, b"\x00")


def test_value_type_topics() -> None:
    # Value types take their regular encoding and can be recovered from the topic
    addr = Address(os.urandom(20))
    word_bytes = os.urandom(32)
    cases = [
        (abi.uint(24), 0xABCDEF, word(b"\xab\xcd\xef", right=True)),
        (abi.int(24), -2, b"\xff" * 31 + b"\xfe"),
        (abi.bool, False, b"\x00" * 32),
        (abi.address, addr, word(bytes(addr), right=True)),
        (abi.bytes(3), b"xyz", word(b"xyz")),
        (abi.bytes(32), word_bytes, word_bytes),
    ]
    for tp, val, topic in cases:
        assert tp.encode_to_topic(val) == topic
        assert tp.decode_from_topic(topic) == val


def test_hashed_topics() -> None:
    # Reference types are hashed, the values cannot be recovered from the topic
    short = os.urandom(7)
    long = os.urandom(40)
    text = "été ☃"  # non-ASCII, to check that the UTF-8 form is hashed

    assert abi.bytes().encode_to_topic(b"") == keccak(b"")
    assert abi.bytes().encode_to_topic(long) == keccak(long)
    assert abi.string.encode_to_topic(text) == keccak(text.encode())

    # Elements of arrays and structs are packed in place, each padded to whole words
    array_topic = abi.bytes()[2].encode_to_topic([short, long])
    assert array_topic == keccak(word(short) + long + b"\x00" * 24)

    inner = abi.struct(tag=abi.bytes(2), note=abi.string)
    outer = abi.struct(items=abi.bytes()[...], flag=abi.bool, inner=inner)
    note = "n" * 33
    struct_topic = outer.encode_to_topic(
        dict(items=[short], flag=True, inner=dict(tag=b"\x01\x02", note=note))
    )
    assert struct_topic == keccak(
        word(short)
        + word(b"\x01", right=True)
        + word(b"\x01\x02")
        + note.encode()
        + b"\x00" * 31
    )

    for tp, topic in [
        (abi.bytes(), keccak(b"")),
        (abi.string, keccak(b"")),
        (abi.bytes()[2], array_topic),
        (outer, struct_topic),
    ]:
        assert tp.decode_from_topic(topic) is None


def test_encode_decode_args() -> None:
    args = ("some string", b"bytestring", 1234)
    types = [abi.string, abi.bytes(), abi.uint(256)]
    encoded = encode_args(*zip(types, args, strict=True))
    assert decode_args(types, encoded) == args

    # empty types/args list
    assert encode_args() == b""
    assert decode_args([], b"") == ()


def test_encoding_layout() -> None:
    # Static values occupy one word each, in place
    assert encode_args((abi.uint(8), 1), (abi.int(8), -1)) == (
        b"\x00" * 31 + b"\x01" + b"\xff" * 32
    )

    # Addresses are right-aligned, fixed-size bytes are left-aligned
    addr = Address(b"\xaa" * 20)
    assert encode_args((abi.address, addr), (abi.bytes(2), b"\x12\x34")) == (
        b"\x00" * 12 + b"\xaa" * 20 + b"\x12\x34" + b"\x00" * 30
    )

    # Dynamic values are referenced by an offset in the head,
    # and are length-prefixed in the tail
    assert encode_args((abi.uint(8), 5), (abi.bytes(), b"\x01\x02")) == (
        (5).to_bytes(32, "big")
        + (64).to_bytes(32, "big")
        + (2).to_bytes(32, "big")
        + b"\x01\x02"
        + b"\x00" * 30
    )


def test_nested_roundtrip() -> None:
    addr = Address(os.urandom(20))
    inner = abi.tuple_(abi.address, abi.bytes()[...])
    item = abi.struct(a=abi.uint(8), b=abi.string[...], c=inner)
    types = [item[...], abi.bytes(3), abi.uint(8)[2][...]]

    values = (
        [
            dict(a=1, b=["x", "yz"], c=(addr, [b"", b"abc"])),
            dict(a=2, b=[], c=(addr, [])),
        ],
        b"abc",
        [[1, 2], [3, 4], [5, 6]],
    )

    encoded = encode_args(*zip(types, values, strict=True))
    assert decode_args(types, encoded) == values

    # An empty dynamic array
    assert decode_args([abi.uint(8)[...]], encode_args((abi.uint(8)[...], []))) == ([],)


def test_decoding_error() -> None:
    types = [abi.uint(256), abi.uint(256)]
    encoded_bytes = b"\x00" * 31 + b"\x01"  # Only one uint256

    expected_message = (
        r"Could not decode the data with the expected signature \(uint256,uint256\)"
    )

    with pytest.raises(ABIDecodingError, match=expected_message):
        decode_args(types, encoded_bytes)

    # An offset pointing past the end of the data
    bad_offset = (2**16).to_bytes(32, "big")
    with pytest.raises(ABIDecodingError, match=r"expected signature \(bytes\)"):
        decode_args([abi.bytes()], bad_offset)


def test_decoding_error_from_malformed_payloads() -> None:
    # A length word that does not fit into a machine integer
    huge_length = (32).to_bytes(32, "big") + (2**255).to_bytes(32, "big")
    with pytest.raises(ABIDecodingError, match=r"expected signature \(bytes\)"):
        decode_args([abi.bytes()], huge_length)
    with pytest.raises(ABIDecodingError, match=r"expected signature \(string\)"):
        decode_args([abi.string], huge_length)

    # A string that is not valid UTF-8
    invalid_utf8 = encode_args((abi.bytes(), b"\xff\xfe"))
    with pytest.raises(ABIDecodingError, match=r"expected signature \(string\)"):
        decode_args([abi.string], invalid_utf8)
