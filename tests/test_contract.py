import pytest

from vinculum import (
    Address,
    BoundEvent,
    BoundMethod,
    Contract,
    ContractABI,
    ErrorDecoder,
    ErrorKind,
    LogTopic,
    NoMatchingOverload,
    abi,
    decode_error,
)
from vinculum._abi_types import encode_args

ERC20_ABI = [
    "constructor(string name, uint8 decimals) payable",
    "function balanceOf(address owner) view returns (uint256)",
    "function transfer(address to, uint256 amount) returns (bool)",
    "function getInfo() view returns (address token, bytes32 tag)",
    "event Transfer(address indexed from, address indexed to, uint256 value)",
    "error InsufficientBalance(uint256 required, uint256 available)",
]

ADDRESS_HEX = "0x85d80245dc02f5a89589e1f19c5c718e405b56cd"
ADDRESS_MAINNET = "cfx:acc7uawf5ubtnmezvhu9dhc6sghea0403y2dgpyfjp"
ADDRESS_TESTNET = "cfxtest:acc7uawf5ubtnmezvhu9dhc6sghea0403ywjz6wtpg"


def test_method_call() -> None:
    contract = Contract(ERC20_ABI, address=ADDRESS_HEX, error_decoder=ErrorDecoder())

    call = contract.method.balanceOf("0x" + "AA" * 20)
    assert call.data_bytes == bytes.fromhex("70a08231") + b"\x00" * 12 + b"\xaa" * 20
    assert call.contract_address == Address.from_hex(ADDRESS_HEX)
    assert call.method is contract.abi.method.balanceOf
    assert not call.mutating
    assert not call.payable

    assert call.decode_output(b"\x00" * 31 + b"\x2a") == 42
    assert call.decode_output("0x" + "00" * 31 + "2a") == 42

    call = contract.method.transfer(ADDRESS_HEX, 10)
    assert call.mutating
    assert call.data_bytes[:4] == bytes.fromhex("a9059cbb")
    assert contract.method.transfer.decode_input(call.data_bytes).as_dict == dict(
        to=Address.from_hex(ADDRESS_HEX), amount=10
    )

    # Named outputs are returned as `FieldValues`
    output = encode_args((abi.address, ADDRESS_HEX), (abi.bytes(32), b"\x01" * 32))
    info = contract.method.getInfo().decode_output(output)
    assert info.token == Address.from_hex(ADDRESS_HEX)
    assert info.tag == b"\x01" * 32


def test_network_id() -> None:
    contract = Contract(
        ERC20_ABI,
        address=ADDRESS_HEX,
        network_id=1029,
        decode_bytes_to_hex=True,
        error_decoder=ErrorDecoder(),
    )
    assert contract.address == ADDRESS_MAINNET

    call = contract.method.balanceOf(ADDRESS_TESTNET)
    assert call.contract_address == ADDRESS_MAINNET
    assert call.data_bytes == contract.method.balanceOf(ADDRESS_HEX).data_bytes

    output = encode_args((abi.address, ADDRESS_HEX), (abi.bytes(32), b"\x01" * 32))
    info = contract.method.getInfo().decode_output(output)
    assert info.as_dict == dict(token=ADDRESS_MAINNET, tag="0x" + "01" * 32)

    decoded = contract.decode_call_data(call.data_bytes)
    assert decoded.named == dict(owner=ADDRESS_MAINNET)

    # A string network prefix is accepted as well
    contract = Contract(ERC20_ABI, address=ADDRESS_MAINNET, network_id="cfxtest")
    assert contract.address == ADDRESS_TESTNET


def test_attach() -> None:
    contract = Contract(ERC20_ABI, error_decoder=ErrorDecoder())
    assert contract.address is None

    # The address is taken at the moment of the call
    balance_of = contract.method.balanceOf
    assert balance_of(ADDRESS_HEX).contract_address is None

    contract.attach(ADDRESS_MAINNET)
    assert contract.address == Address.from_hex(ADDRESS_HEX)
    assert balance_of(ADDRESS_HEX).contract_address == Address.from_hex(ADDRESS_HEX)

    other = Address(b"\x01" * 20)
    contract.attach(other)
    assert balance_of(ADDRESS_HEX).contract_address == other

    contract.address = None
    assert balance_of(ADDRESS_HEX).contract_address is None

    with pytest.raises(ValueError, match="Invalid hex address: 'not an address'"):
        contract.attach("not an address")


def test_constructor() -> None:
    contract = Contract(ERC20_ABI, error_decoder=ErrorDecoder())

    with pytest.raises(ValueError, match="The contract bytecode is not set"):
        contract.constructor("Token", 18)

    # The bytecode can be set later
    contract.constructor.bytecode = "0x6080"
    assert contract.constructor.bytecode == b"\x60\x80"

    call = contract.constructor("Token", 18)
    assert call.payable
    assert call.contract_abi is contract.abi
    expected_args = encode_args((abi.string, "Token"), (abi.uint(8), 18))
    assert call.data_bytes == b"\x60\x80" + expected_args

    decoded = contract.constructor.decode_input(call.data_bytes)
    assert decoded.as_dict == dict(name="Token", decimals=18)

    with pytest.raises(
        ValueError, match="The deployment data does not start with the contract bytecode"
    ):
        contract.constructor.decode_input(b"\x00\x00" + expected_args)

    contract = Contract(ERC20_ABI, bytecode=b"\x60\x80", error_decoder=ErrorDecoder())
    assert contract.constructor("Token", decimals=18).data_bytes == b"\x60\x80" + expected_args


def test_dispatch() -> None:
    contract = Contract(ERC20_ABI, error_decoder=ErrorDecoder())

    balance_of = contract.method.balanceOf
    assert isinstance(balance_of, BoundMethod)
    assert balance_of.name == "balanceOf"
    assert str(balance_of) == "function balanceOf(address owner) view returns (uint256)"

    # All the keys lead to the same bound object
    assert contract.method["balanceOf(address)"] is balance_of
    assert contract.method["0x70a08231"] is balance_of
    assert contract["balanceOf"] is balance_of
    assert contract[bytes.fromhex("70a08231")] is balance_of

    transfer_event = contract.event.Transfer
    assert isinstance(transfer_event, BoundEvent)
    assert contract["Transfer"] is transfer_event
    assert contract["Transfer(address,address,uint256)"] is transfer_event

    assert contract["InsufficientBalance"] is contract.abi.error.InsufficientBalance

    with pytest.raises(KeyError):
        contract["approve"]

    assert str(contract) == str(contract.abi)


def test_overloaded_methods() -> None:
    contract = Contract(
        ["function f(uint256 x) view returns (uint8)", "function f(string s) view"],
        error_decoder=ErrorDecoder(),
    )

    call = contract.method.f(1)
    assert call.method.signature == "f(uint256)"
    assert call.decode_output(b"\x00" * 31 + b"\x07") == 7

    call = contract.method.f("one")
    assert call.method.signature == "f(string)"

    # Explicit overload selection
    call = contract.method.f["(uint256)"](1)
    assert call.method.signature == "f(uint256)"
    assert contract.method["f(string)"]("one").data_bytes == (
        contract.abi.method["f(string)"]("one").data_bytes
    )

    with pytest.raises(NoMatchingOverload, match="candidates: f\\(uint256\\), f\\(string\\)"):
        contract.method.f(b"bytes")

    with pytest.raises(NoMatchingOverload, match="No method `f` corresponds to '\\(bool\\)'"):
        contract.method.f["(bool)"]

    assert contract.method.f.decode_input(call.data_bytes).as_tuple == (1,)


def test_events() -> None:
    contract = Contract(ERC20_ABI, address=ADDRESS_HEX, error_decoder=ErrorDecoder())
    addr1 = Address(b"\x01" * 20)
    addr2 = Address(b"\x02" * 20)

    event_filter = contract.event.Transfer(to=addr2)
    assert event_filter.contract_address == Address.from_hex(ADDRESS_HEX)
    assert event_filter.topics == (
        (LogTopic(contract.abi.event.Transfer.topic),),
        None,
        (LogTopic(abi.address.encode_to_topic(addr2)),),
    )

    topics = [
        contract.abi.event.Transfer.topic,
        abi.address.encode_to_topic(addr1),
        abi.address.encode_to_topic(addr2),
    ]
    data = abi.uint(256).encode(5)

    expected = {"from": addr1, "to": addr2, "value": 5}
    assert contract.event.Transfer.decode_log_entry(topics, data).as_dict == expected
    assert event_filter.decode_log_entry(topics, data).as_dict == expected
    assert event_filter.decode_log_entry(topics, data, address=ADDRESS_MAINNET).as_dict == expected

    with pytest.raises(ValueError, match="Log entry originates from a different contract"):
        event_filter.decode_log_entry(topics, data, address=addr1)

    decoded = contract.decode_log(topics, data)
    assert decoded.name == "Transfer"
    assert decoded.named == expected


def test_error_registry() -> None:
    error_decoder = ErrorDecoder()
    contract = Contract(ERC20_ABI, error_decoder=error_decoder)
    error = contract.error.InsufficientBalance
    assert error.selector in error_decoder

    data = error.selector + encode_args((abi.uint(256), 10), (abi.uint(256), 1))
    decoded = contract.decode_error(data)
    assert decoded.kind == ErrorKind.CUSTOM
    assert decoded.values is not None
    assert decoded.values.as_dict == dict(required=10, available=1)

    # Errors of other contracts sharing the registry are recognized too
    other = Contract(["error Unauthorized(address caller)"], error_decoder=error_decoder)
    unauthorized = other.error.Unauthorized
    data = unauthorized.selector + encode_args((abi.address, ADDRESS_HEX))
    decoded = contract.decode_error(data)
    assert decoded.kind == ErrorKind.CUSTOM
    assert decoded.name == "Unauthorized"

    # The error is not in this contract's own ABI
    assert contract.abi.decode_error(data).kind == ErrorKind.UNDECODABLE


def test_default_error_registry() -> None:
    contract = Contract(["error NotOwnerOfToken(uint256 token_id)"])
    error = contract.error.NotOwnerOfToken
    data = error.selector + encode_args((abi.uint(256), 7))

    decoded = decode_error(data)
    assert decoded.kind == ErrorKind.CUSTOM
    assert decoded.values is not None
    assert decoded.values.token_id == 7
    assert contract.decode_error(data).error is error


def test_contract_from_contract_abi() -> None:
    contract_abi = ContractABI.from_json(ERC20_ABI)

    # Without options the same ABI object is used
    contract = Contract(contract_abi, error_decoder=ErrorDecoder())
    assert contract.abi is contract_abi

    # With options the ABI is rebuilt
    contract = Contract(contract_abi, network_id=1, error_decoder=ErrorDecoder())
    assert contract.abi is not contract_abi
    assert str(contract.abi) == str(contract_abi)

    output = encode_args((abi.address, ADDRESS_HEX), (abi.bytes(32), b"\x01" * 32))
    info = contract.method.getInfo().decode_output(output)
    assert info.token == ADDRESS_TESTNET

    # JSON strings are accepted as well
    contract = Contract(
        '[{"type": "function", "name": "f", "stateMutability": "view", "inputs": []}]',
        error_decoder=ErrorDecoder(),
    )
    assert contract.method.f().data_bytes == contract.abi.method.f.selector


def test_contract_abi_options_carry_over() -> None:
    contract_abi = ContractABI.from_json(ERC20_ABI, network_id=1029)
    output = encode_args((abi.address, ADDRESS_HEX), (abi.bytes(32), b"\x01" * 32))

    # Adding another option keeps the network id set on the ABI
    contract = Contract(contract_abi, decode_bytes_to_hex=True, error_decoder=ErrorDecoder())
    info = contract.abi.method.getInfo.decode_output(output)
    assert info.token == ADDRESS_MAINNET
    assert info.tag == "0x" + "01" * 32

    # An explicit network id takes precedence
    contract = Contract(contract_abi, network_id=1, error_decoder=ErrorDecoder())
    info = contract.method.getInfo().decode_output(output)
    assert info.token == ADDRESS_TESTNET
    assert info.tag == b"\x01" * 32
