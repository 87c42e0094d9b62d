import logging
from collections.abc import Sequence
from typing import Any

from ._abi_types import ABI_JSON
from ._contract_abi import ContractABI, DispatchTable
from ._entities import Address, LogTopic, NetworkId
from ._error_decoder import DecodedError, ErrorDecoder, default_error_decoder
from ._fragments import (
    Constructor,
    DecodedFragment,
    Error,
    Event,
    EventFilter,
    FieldValues,
    Method,
)
from ._normalizer import DecodeOptions
from ._overloads import MultiError, MultiEvent, MultiMethod
from ._signatures import data_bytes

logger = logging.getLogger(__name__)


class BoundConstructor:
    """
    A constructor bound to a specific contract's bytecode.
    The bytecode can be set or replaced after the contract object was created.
    """

    def __init__(self, contract_abi: ContractABI, bytecode: None | bytes | str = None):
        self._contract_abi = contract_abi
        self._constructor = contract_abi.constructor
        self.bytecode = bytecode

    @property
    def constructor(self) -> Constructor:
        """The underlying constructor."""
        return self._constructor

    @property
    def bytecode(self) -> None | bytes:
        """The contract's deployment bytecode, if set."""
        return self._bytecode

    @bytecode.setter
    def bytecode(self, bytecode: None | bytes | str) -> None:
        self._bytecode = None if bytecode is None else data_bytes(bytecode)

    def __call__(self, *args: Any, **kwargs: Any) -> "BoundConstructorCall":
        """
        Returns a constructor call with encoded arguments and bytecode.
        """
        if self._bytecode is None:
            raise ValueError("The contract bytecode is not set")
        call = self._constructor(*args, **kwargs)
        data_bytes = self._bytecode + call.input_bytes
        return BoundConstructorCall(self._contract_abi, data_bytes, self._constructor.payable)

    def decode_input(self, data: bytes | str) -> FieldValues:
        """Decodes the constructor arguments from the deployment data (bytecode and arguments)."""
        if self._bytecode is None:
            raise ValueError("The contract bytecode is not set")
        deployment_data = data_bytes(data)
        if not deployment_data.startswith(self._bytecode):
            raise ValueError("The deployment data does not start with the contract bytecode")
        return self._constructor.decode_arguments(deployment_data[len(self._bytecode) :])


class BoundConstructorCall:
    """
    A constructor call with encoded arguments and bytecode.
    """

    contract_abi: ContractABI
    """The corresponding contract's ABI"""

    payable: bool
    """Whether this call is payable."""

    data_bytes: bytes
    """Encoded arguments and the contract's bytecode."""

    def __init__(self, contract_abi: ContractABI, data_bytes: bytes, payable: bool):  # noqa: FBT001
        self.contract_abi = contract_abi
        self.payable = payable
        self.data_bytes = data_bytes


class BoundMethod:
    """
    A method (or a group of overloaded methods) bound to a specific contract.
    The contract address is taken at the moment of the call.
    """

    def __init__(self, contract: "Contract", method: Method | MultiMethod):
        self._contract = contract
        self.method = method

    @property
    def name(self) -> str:
        return self.method.name

    def __call__(self, *args: Any, **kwargs: Any) -> "BoundMethodCall":
        """
        Returns a contract call with encoded arguments bound to the contract's address.
        """
        call = self.method(*args, **kwargs)
        return BoundMethodCall(call.method, self._contract.address, call.data_bytes)

    def __getitem__(self, key: str | bytes) -> "BoundMethod":
        """
        Returns one of the overloaded methods bound to the contract
        (see :py:meth:`~vinculum.MultiMethod.resolve`).
        """
        if isinstance(self.method, MultiMethod):
            return BoundMethod(self._contract, self.method.resolve(key))
        return BoundMethod(self._contract, MultiMethod(self.method).resolve(key))

    def decode_input(self, data: bytes | str) -> FieldValues:
        """Decodes the call data (including the selector)."""
        return self.method.decode_input(data_bytes(data))

    def __str__(self) -> str:
        return str(self.method)


class BoundMethodCall:
    """
    A method call with encoded arguments bound to a specific contract address.
    """

    contract_address: None | Address | str
    """The contract address (``None`` if the contract is not attached to an address)."""

    data_bytes: bytes
    """Encoded call arguments with the selector."""

    payable: bool
    """Whether this call is payable."""

    mutating: bool
    """Whether this call may mutate the contract state."""

    def __init__(self, method: Method, contract_address: None | Address | str, data_bytes: bytes):
        self._method = method
        self.contract_address = contract_address
        self.data_bytes = data_bytes
        self.payable = method.payable
        self.mutating = method.mutating

    @property
    def method(self) -> Method:
        """The method that encoded this call."""
        return self._method

    def decode_output(self, output_bytes: bytes | str) -> Any:
        """
        Decodes contract output packed into the bytestring.
        """
        return self._method.decode_output(data_bytes(output_bytes))


class BoundEvent:
    """
    An event (or a group of overloaded events) bound to a specific contract.
    """

    def __init__(self, contract: "Contract", event: Event | MultiEvent):
        self._contract = contract
        self.event = event

    @property
    def name(self) -> str:
        return self.event.name

    def __call__(self, *args: Any, **kwargs: Any) -> "BoundEventFilter":
        """
        Returns an event filter with encoded arguments bound to the contract's address.
        """
        return BoundEventFilter(self._contract.address, self.event, self.event(*args, **kwargs))

    def decode_log_entry(self, topics: Sequence[bytes | LogTopic], data: bytes) -> FieldValues:
        """Decodes the event fields from the given log entry topics and data."""
        return self.event.decode_log_entry(topics, data)

    def __str__(self) -> str:
        return str(self.event)


class BoundEventFilter:
    """
    An event filter bound to a specific contract address.
    """

    contract_address: None | Address | str
    """The contract address."""

    topics: tuple[None | tuple[LogTopic, ...], ...]
    """Encoded topics for filtering."""

    def __init__(
        self,
        contract_address: None | Address | str,
        event: Event | MultiEvent,
        event_filter: EventFilter,
    ):
        self.contract_address = contract_address
        self.topics = event_filter.topics
        self._event = event

    def decode_log_entry(
        self,
        topics: Sequence[bytes | LogTopic],
        data: bytes,
        address: None | Address | str = None,
    ) -> FieldValues:
        """
        Decodes the event fields from the given log entry topics and data.
        If ``address`` is given, checks that the log entry originates from the bound contract.
        """
        if address is not None and self.contract_address is not None:
            if _as_address(address) != _as_address(self.contract_address):
                raise ValueError("Log entry originates from a different contract")
        return self._event.decode_log_entry(topics, data)


def _as_address(address: Address | str) -> Address:
    return address if isinstance(address, Address) else Address.from_str(address)


class Contract:
    """
    A contract interface bound to an optional deployment bytecode and an optional address.

    ``abi`` can be a list of JSON ABI entries or human-readable fragment signatures
    (or a mix of both), a JSON string, or a :py:class:`ContractABI`.

    If ``network_id`` is given, addresses are decoded (and the contract address is rendered)
    in the network-qualified format.
    If ``decode_bytes_to_hex`` is ``True``, bytestrings are decoded into hex strings.

    The custom errors of the contract are registered in ``error_decoder``
    (the system-wide :py:data:`~vinculum.default_error_decoder` by default).
    """

    abi: ContractABI
    """Contract's ABI."""

    options: DecodeOptions
    """Decoding options."""

    constructor: BoundConstructor
    """Contract's constructor bound to the bytecode."""

    method: DispatchTable[BoundMethod]
    """Contract's methods bound to the address."""

    event: DispatchTable[BoundEvent]
    """Contract's events bound to the address."""

    error: DispatchTable[Error | MultiError]
    """Contract's errors."""

    def __init__(
        self,
        abi: ContractABI | ABI_JSON,
        *,
        address: None | Address | str = None,
        bytecode: None | bytes | str = None,
        network_id: None | NetworkId = None,
        decode_bytes_to_hex: bool = False,
        error_decoder: ErrorDecoder = default_error_decoder,
    ):
        self.options = DecodeOptions(network_id=network_id, decode_bytes_to_hex=decode_bytes_to_hex)

        if isinstance(abi, ContractABI):
            if self.options != DecodeOptions():
                # The options are attached to the types, so the ABI has to be rebuilt.
                # Decoding options already set on the ABI carry over.
                abi = ContractABI.from_json(
                    abi.to_json(),
                    network_id=network_id,
                    decode_bytes_to_hex=decode_bytes_to_hex,
                )
        else:
            abi = ContractABI.from_json(
                abi, network_id=network_id, decode_bytes_to_hex=decode_bytes_to_hex
            )

        self.abi = abi
        self.constructor = BoundConstructor(abi, bytecode)
        self.method = abi.method.map(lambda method: BoundMethod(self, method))
        self.event = abi.event.map(lambda event: BoundEvent(self, event))
        self.error = abi.error

        self._error_decoder = error_decoder
        error_decoder.register_all(abi.error.fragments())

        self._address: None | Address = None
        if address is not None:
            self.attach(address)

    @property
    def address(self) -> None | Address | str:
        """
        The contract address, or ``None`` if not attached.
        Returned as a network-qualified string if the network id is configured.
        """
        if self._address is None or self.options.network_id is None:
            return self._address
        return self._address.to_base32(self.options.network_id)

    @address.setter
    def address(self, address: None | Address | str) -> None:
        self._address = None if address is None else _as_address(address)

    def attach(self, address: Address | str) -> None:
        """Binds the contract to the given address (replacing the previous one)."""
        self.address = address
        logger.debug("Contract attached to %s", self.address)

    def __getitem__(self, key: str | bytes) -> Any:
        """
        Returns a bound method, a bound event, or an error (in that order of priority)
        by its name, signature, or selector.
        """
        for table in (self.method, self.event, self.error):
            entry = table.get(key)
            if entry is not None:
                return entry
        raise KeyError(key)

    def decode_call_data(self, data: bytes | str) -> DecodedFragment:
        """See :py:meth:`ContractABI.decode_call_data`."""
        return self.abi.decode_call_data(data)

    def decode_log(
        self, topics: Sequence[bytes | str | LogTopic], data: bytes | str
    ) -> DecodedFragment:
        """See :py:meth:`ContractABI.decode_log`."""
        return self.abi.decode_log(topics, data)

    def decode_error(self, data: bytes | str) -> DecodedError:
        """
        Decodes the error data using the error decoder this contract registered its errors in
        (so errors of other contracts registered there are recognized too).
        """
        return self._error_decoder.decode(data)

    def __str__(self) -> str:
        return str(self.abi)
