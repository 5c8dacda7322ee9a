"""Session, dispatch and lock enforcement core."""

from lockbot.core.models import EventKind, PlatformEvent

__all__ = ["EventKind", "PlatformEvent"]
