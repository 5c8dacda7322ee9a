"""Port interfaces for the messaging platform transport."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol


class TransportSession(Protocol):
    """One authenticated platform session."""

    def get_current_user_id(self) -> str:
        """Identifier of the account this session is logged in as."""

    async def set_options(self, **options: Any) -> None:
        """Apply listening options (selfListen, listenEvents, updatePresence)."""

    async def get_app_state(self) -> list[Any]:
        """Return the current opaque credential blob."""

    async def start_listening(self) -> AsyncIterator[dict[str, Any]]:
        """Start the live event stream.

        Raises ListenerError when the stream cannot start; the returned
        iterator raises ListenerError when the stream drops.
        """

    async def stop_listening(self) -> None:
        """Stop the live event stream."""

    async def close(self) -> None:
        """Release the session."""

    async def set_title(self, title: str, thread_id: str) -> None:
        """Rename a group."""

    async def change_nickname(self, nickname: str, thread_id: str, user_id: str) -> None:
        """Set one member's nickname in a group."""

    async def change_thread_image(self, image: str, thread_id: str) -> None:
        """Set a group's photo from an image reference."""

    async def send_message(self, message: dict[str, Any], thread_id: str) -> None:
        """Send a message (body plus mentions) to a group."""

    async def get_thread_info(self, thread_id: str) -> dict[str, Any]:
        """Fetch group metadata (name, participants, nicknames, image)."""

    async def get_user_info(self, user_ids: list[str]) -> dict[str, dict[str, Any]]:
        """Fetch user profiles keyed by user id."""

    async def get_thread_list(self, limit: int, tags: list[str]) -> list[dict[str, Any]]:
        """List the session's threads."""


class Transport(Protocol):
    """Factory for authenticated sessions."""

    async def login(self, app_state: list[Any]) -> TransportSession:
        """Open a session from stored credentials or raise LoginError."""
