"""Error types shared by the relay core and its HTTP surface."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for failures surfaced to a caller.

    ``status`` is the HTTP status the control plane answers with.
    """

    status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Forbidden(RelayError):
    status = 403


class NotFound(RelayError):
    status = 404


class RoomNotFound(NotFound):
    def __init__(self, path: str) -> None:
        super().__init__(f"Room {path} not found")
        self.path = path


class ClientNotFound(NotFound):
    def __init__(self, client_id: str) -> None:
        super().__init__(f"Client {client_id} not found")
        self.client_id = client_id


class InvalidArgument(RelayError, ValueError):
    status = 400


class InvalidPath(InvalidArgument):
    pass


class OutOfRange(InvalidArgument):
    def __init__(self, index: int, length: int) -> None:
        super().__init__(f"Invalid message index {index} (log has {length} entries)")
        self.index = index
        self.length = length


class InternalError(RelayError):
    status = 500
