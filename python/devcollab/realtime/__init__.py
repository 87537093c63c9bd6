"""Realtime channel: in-process gateway and per-connection handler."""

from devcollab.realtime.gateway import Connection, RealtimeGateway
from devcollab.realtime.handler import RealtimeHandler

__all__ = ["Connection", "RealtimeGateway", "RealtimeHandler"]
