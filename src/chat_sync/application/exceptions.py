from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class AuthenticationError(AppError):
    """The REST collaborator rejected the stored credential."""


class ChatApiError(AppError):
    pass


class ChannelNotOpenError(AppError):
    pass


class SendFailedError(AppError):
    """Both the socket send and the REST fallback failed."""


class ValidationError(AppError):
    pass
