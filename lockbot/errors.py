"""Error taxonomy shared by the session, dispatch and command layers."""

from __future__ import annotations


class LockbotError(Exception):
    """Base class for lockbot errors."""


class LoginError(LockbotError):
    """Credentials were rejected or the transport could not be reached."""


class ListenerError(LockbotError):
    """The live event stream dropped or could not be started."""


class ActionError(LockbotError):
    """One platform action (rename, send, fetch) failed."""

    def __init__(self, action: str, message: str):
        super().__init__(f"{action}: {message}")
        self.action = action


class ConfigError(LockbotError, ValueError):
    """Configuration on disk or submitted by an operator is invalid."""


class HandlerError(LockbotError):
    """An event handler raised while processing one event."""

    def __init__(self, kind: str, cause: BaseException):
        super().__init__(f"{kind} handler failed: {cause}")
        self.kind = kind
        self.cause = cause
