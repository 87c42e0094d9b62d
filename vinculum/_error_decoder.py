import logging
from collections.abc import Iterable
from enum import Enum

from . import abi
from ._abi_types import ABIDecodingError
from ._fragments import Error, FieldValues
from ._signatures import SELECTOR_LENGTH, data_bytes

logger = logging.getLogger(__name__)


PANIC_ERROR = Error("Panic", dict(code=abi.uint(256)))
"""The error produced by a failed ``assert()`` or a runtime check (``Panic(uint256)``)."""


LEGACY_ERROR = Error("Error", dict(message=abi.string))
"""The error produced by ``require()`` or ``revert()`` with a message (``Error(string)``)."""


class ContractPanicReason(Enum):
    """The meaning of a ``Panic(uint256)`` code, as assigned by the Solidity compiler."""

    UNKNOWN = -1
    COMPILER = 0x00
    # `assert()` with a false condition
    ASSERTION = 0x01
    # Checked arithmetic went out of range
    OVERFLOW = 0x11
    DIVISION_BY_ZERO = 0x12
    # Out of range conversion to an `enum`
    INVALID_ENUM_VALUE = 0x21
    # Corrupted storage byte array
    INVALID_ENCODING = 0x22
    # `.pop()` on an empty array
    EMPTY_ARRAY = 0x31
    # Index out of range for an array, a slice or `bytesN`
    OUT_OF_BOUNDS = 0x32
    # Allocation too large
    OUT_OF_MEMORY = 0x41
    # Call through a zero-initialized internal function variable
    ZERO_DEREFERENCE = 0x51

    @classmethod
    def from_int(cls, val: int) -> "ContractPanicReason":
        """Maps a panic code to a reason, unassigned codes becoming ``UNKNOWN``."""
        try:
            return cls(val)
        except ValueError:
            return cls.UNKNOWN


class ContractPanic(Exception):
    """Raised for a ``Panic(uint256)`` revert."""

    Reason = ContractPanicReason

    reason: ContractPanicReason

    @classmethod
    def from_code(cls, code: int) -> "ContractPanic":
        return cls(ContractPanicReason.from_int(code))

    def __init__(self, reason: ContractPanicReason):
        super().__init__(reason)
        self.reason = reason


class ContractLegacyError(Exception):
    """Raised for an ``Error(string)`` revert, the kind ``require(cond, "message")`` produces."""

    message: str

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ContractError(Exception):
    """Raised for a revert with a custom error declared in an ABI."""

    error: Error
    """The matching error fragment."""

    data: FieldValues
    """The values the error was raised with."""

    def __init__(self, error: Error, decoded_data: FieldValues):
        super().__init__(error, decoded_data)
        self.error = error
        self.data = decoded_data


class UndecodableError(Exception):
    """A contract error that could not be matched with any known error."""

    data: bytes
    """The raw error data."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.data = data


class ErrorKind(Enum):
    """The way a revert payload was recognized."""

    CUSTOM = "custom"
    """A custom error (``revert SomeError(...)``)."""

    LEGACY = "legacy"
    """``Error(string)``."""

    PANIC = "panic"
    """``Panic(uint256)``."""

    UNDECODABLE = "undecodable"
    """The payload did not match any known error."""


class DecodedError:
    """The result of decoding a revert payload."""

    kind: ErrorKind
    """The way the payload was recognized."""

    data: bytes
    """The raw payload."""

    error: None | Error
    """The matched error, if any."""

    values: None | FieldValues
    """The decoded error fields, if any."""

    reason: None | str | ContractPanicReason
    """The message of a legacy error, or the panic reason."""

    def __init__(
        self,
        kind: ErrorKind,
        data: bytes,
        error: None | Error = None,
        values: None | FieldValues = None,
        reason: None | str | ContractPanicReason = None,
    ):
        self.kind = kind
        self.data = data
        self.error = error
        self.values = values
        self.reason = reason

    @property
    def name(self) -> None | str:
        """The name of the matched error, if any."""
        return self.error.name if self.error is not None else None

    def to_exception(
        self,
    ) -> ContractError | ContractLegacyError | ContractPanic | UndecodableError:
        """Returns the exception object corresponding to this error."""
        if self.kind == ErrorKind.PANIC:
            assert isinstance(self.reason, ContractPanicReason)  # noqa: S101
            return ContractPanic(self.reason)
        if self.kind == ErrorKind.LEGACY:
            return ContractLegacyError(str(self.reason))
        if self.kind == ErrorKind.CUSTOM:
            assert self.error is not None  # noqa: S101
            assert self.values is not None  # noqa: S101
            return ContractError(self.error, self.values)
        return UndecodableError(self.data)

    def __repr__(self) -> str:
        return f"DecodedError(kind={self.kind}, name={self.name!r}, values={self.values!r})"


class ErrorDecoder:
    """
    A registry of custom errors by their selectors.

    When decoding, custom errors are tried first,
    then ``Error(string)`` and ``Panic(uint256)``.
    """

    def __init__(self, errors: Iterable[Error] = ()):
        self._errors: dict[bytes, Error] = {}
        self.register_all(errors)

    def register(self, error: Error) -> None:
        """Registers a custom error. An error with the same selector is replaced."""
        logger.debug("Registering error `%s` (0x%s)", error.signature, error.selector.hex())
        self._errors[error.selector] = error

    def register_all(self, errors: Iterable[Error]) -> None:
        """Registers several custom errors."""
        for error in errors:
            self.register(error)

    def __contains__(self, selector: bytes) -> bool:
        return selector in self._errors

    def __len__(self) -> int:
        return len(self._errors)

    def decode(self, data: bytes | str) -> DecodedError:
        """
        Decodes the revert payload (including the selector).
        Data that cannot be matched with a known error results in
        a :py:class:`DecodedError` of kind :py:attr:`ErrorKind.UNDECODABLE`.
        """
        payload = data_bytes(data)
        if len(payload) < SELECTOR_LENGTH:
            logger.debug("Error data too short to contain a selector: 0x%s", payload.hex())
            return DecodedError(ErrorKind.UNDECODABLE, payload)

        selector, fields_data = payload[:SELECTOR_LENGTH], payload[SELECTOR_LENGTH:]

        custom = self._errors.get(selector)
        if custom is not None:
            values = _try_decode(custom, fields_data)
            if values is not None:
                return DecodedError(ErrorKind.CUSTOM, payload, error=custom, values=values)

        if selector == LEGACY_ERROR.selector:
            values = _try_decode(LEGACY_ERROR, fields_data)
            if values is not None:
                return DecodedError(
                    ErrorKind.LEGACY,
                    payload,
                    error=LEGACY_ERROR,
                    values=values,
                    reason=values["message"],
                )

        if selector == PANIC_ERROR.selector:
            values = _try_decode(PANIC_ERROR, fields_data)
            if values is not None:
                return DecodedError(
                    ErrorKind.PANIC,
                    payload,
                    error=PANIC_ERROR,
                    values=values,
                    reason=ContractPanicReason.from_int(values["code"]),
                )

        logger.debug("Could not decode error data with selector 0x%s", selector.hex())
        return DecodedError(ErrorKind.UNDECODABLE, payload)


def _try_decode(error: Error, fields_data: bytes) -> None | FieldValues:
    try:
        return error.decode_fields(fields_data)
    except (ABIDecodingError, ValueError) as exc:
        logger.debug("Error data does not match `%s`: %s", error.signature, exc)
        return None


default_error_decoder = ErrorDecoder()
"""The system-wide error registry every :py:class:`~vinculum.Contract` registers its errors into."""


def decode_error(data: bytes | str) -> DecodedError:
    """Decodes the revert payload using :py:data:`default_error_decoder`."""
    return default_error_decoder.decode(data)
