"""Messaging platform transport: port definitions and the bridge adapter."""

from lockbot.transport.base import Transport, TransportSession
from lockbot.transport.bridge import BridgeSession, BridgeTransport

__all__ = ["BridgeSession", "BridgeTransport", "Transport", "TransportSession"]
