"""Contract ABI binding: call encoding, output, log and error decoding, overload dispatch."""

from . import abi
from ._abi_types import ABIDecodingError, MalformedABI
from ._contract import (
    BoundConstructor,
    BoundConstructorCall,
    BoundEvent,
    BoundEventFilter,
    BoundMethod,
    BoundMethodCall,
    Contract,
)
from ._contract_abi import ContractABI, DispatchTable, UnknownError, UnknownSelector
from ._entities import MAINNET_ID, TESTNET_ID, Address, LogTopic, decode_base32, encode_base32
from ._error_decoder import (
    LEGACY_ERROR,
    PANIC_ERROR,
    ContractError,
    ContractLegacyError,
    ContractPanic,
    ContractPanicReason,
    DecodedError,
    ErrorDecoder,
    ErrorKind,
    UndecodableError,
    decode_error,
    default_error_decoder,
)
from ._fragments import (
    Constructor,
    ConstructorCall,
    DecodedFragment,
    DuplicateSignature,
    Either,
    Error,
    Event,
    EventFilter,
    FieldValues,
    Method,
    MethodCall,
    Mutability,
)
from ._normalizer import DecodeOptions, normalize_abi
from ._overloads import MultiError, MultiEvent, MultiMethod, NoMatchingOverload
from ._signatures import event_topic, fragment_signature, function_selector

__all__ = [
    "ABIDecodingError",
    "Address",
    "BoundConstructor",
    "BoundConstructorCall",
    "BoundEvent",
    "BoundEventFilter",
    "BoundMethod",
    "BoundMethodCall",
    "Constructor",
    "ConstructorCall",
    "Contract",
    "ContractABI",
    "ContractError",
    "ContractLegacyError",
    "ContractPanic",
    "ContractPanicReason",
    "DecodeOptions",
    "DecodedError",
    "DecodedFragment",
    "DispatchTable",
    "DuplicateSignature",
    "Either",
    "Error",
    "ErrorDecoder",
    "ErrorKind",
    "Event",
    "EventFilter",
    "FieldValues",
    "LEGACY_ERROR",
    "LogTopic",
    "MAINNET_ID",
    "MalformedABI",
    "Method",
    "MethodCall",
    "MultiError",
    "MultiEvent",
    "MultiMethod",
    "Mutability",
    "NoMatchingOverload",
    "PANIC_ERROR",
    "TESTNET_ID",
    "UndecodableError",
    "UnknownError",
    "UnknownSelector",
    "abi",
    "decode_base32",
    "decode_error",
    "default_error_decoder",
    "encode_base32",
    "event_topic",
    "fragment_signature",
    "function_selector",
    "normalize_abi",
]
