from __future__ import annotations

# Every failure the core reports carries a machine code (like the host
# protocol's error frames) plus a human-readable message. The HTTP layer maps
# http_status; the WebSocket layer sends {code, msg}.


class TournamentError(Exception):
    http_status = 500

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


class ValidationError(TournamentError):
    http_status = 400


class NotFoundError(TournamentError):
    http_status = 404


class ConflictError(TournamentError):
    http_status = 409


class DeliveryError(TournamentError):
    """A single recipient could not be reached. Always recovered into a failure list."""

    http_status = 502

    def __init__(self, msg: str, code: str = "DELIVERY_FAILED") -> None:
        super().__init__(code, msg)


class PersistenceError(TournamentError):
    """The durable write failed. Logged by the store; memory stays authoritative."""

    def __init__(self, msg: str, code: str = "PERSIST_FAILED") -> None:
        super().__init__(code, msg)
