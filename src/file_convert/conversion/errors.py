"""
Error taxonomy for the conversion layer.

Every failure that reaches a user is a `ConversionError` carrying a kind, a
retry hint and a user message that never contains engine diagnostics. The
internal message (``str(error)``) is for logs only.
"""

from enum import Enum


class ConversionErrorKind(Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    ILLEGAL_TARGET_SELECTED = "illegal_target_selected"
    ENGINE_INITIALIZATION_FAILED = "engine_initialization_failed"
    ENGINE_EXECUTION_FAILED = "engine_execution_failed"
    DECODE_FAILED = "decode_failed"
    ENCODE_FAILED = "encode_failed"
    UNKNOWN = "unknown"


class ConversionError(Exception):
    kind = ConversionErrorKind.UNKNOWN
    retryable = False
    user_message = "Conversion failed. Please try again or choose a different file."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class UnsupportedFormat(ConversionError):
    kind = ConversionErrorKind.UNSUPPORTED_FORMAT
    user_message = "This file format is not supported for conversion."


class IllegalTargetSelected(ConversionError, ValueError):
    """Raised to the caller when a target outside the legal set is requested.

    A correctly wired UI never triggers this; it is not surfaced as a failure event.
    """

    kind = ConversionErrorKind.ILLEGAL_TARGET_SELECTED
    user_message = "The selected output format is not available for this file."


class EngineInitializationFailed(ConversionError):
    kind = ConversionErrorKind.ENGINE_INITIALIZATION_FAILED
    retryable = True
    user_message = "Conversion failed: the audio converter could not be loaded. Please try again."


class EngineExecutionFailed(ConversionError):
    kind = ConversionErrorKind.ENGINE_EXECUTION_FAILED
    user_message = "Conversion failed: the audio could not be converted. The file may be damaged."


class DecodeFailed(ConversionError):
    kind = ConversionErrorKind.DECODE_FAILED
    user_message = "Conversion failed: the file could not be read."


class EncodeFailed(ConversionError):
    kind = ConversionErrorKind.ENCODE_FAILED
    user_message = "Conversion failed: the output file could not be written."


class UnknownConversionError(ConversionError):
    kind = ConversionErrorKind.UNKNOWN


class ConversionInProgressError(RuntimeError):
    """A new file, target or reset arrived while a conversion is still running."""


def classify_error(exc: BaseException) -> ConversionError:
    if isinstance(exc, ConversionError):
        return exc
    error = UnknownConversionError(f"{type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error
