from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class TransportError(AppError):
    """Backend unreachable, timed out, answered non-2xx or sent an undecodable body."""

    def __init__(self, detail: str = "", *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(detail)


class UploadError(TransportError):
    pass


class ValidationError(AppError):
    pass
