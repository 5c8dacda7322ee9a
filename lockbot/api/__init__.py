"""Dashboard HTTP surface and log fan-out."""

from lockbot.api.hub import DashboardHub
from lockbot.api.server import create_app

__all__ = ["DashboardHub", "create_app"]
