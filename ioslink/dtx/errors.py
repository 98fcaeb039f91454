"""Errors raised while decoding DTX messages."""


class DtxError(Exception):
    """Base class for DTX codec errors."""

    out_of_sync = False
    incomplete = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class OutOfSyncError(DtxError):
    """The stream does not start with the DTX magic bytes."""

    out_of_sync = True


class IncompleteError(DtxError):
    """Not enough bytes were available to decode a whole message."""

    incomplete = True


def is_out_of_sync(err: BaseException) -> bool:
    """Return True if ``err`` signals a stream that lost its framing."""
    return isinstance(err, DtxError) and err.out_of_sync


def is_incomplete(err: BaseException) -> bool:
    """Return True if ``err`` signals a message that is not complete yet."""
    return isinstance(err, DtxError) and err.incomplete