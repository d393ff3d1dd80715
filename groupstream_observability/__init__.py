"""HTTP and websocket surface for live outbound group status."""

from .broadcaster import GroupStreamBridge
from .client import WebSocketGroupClient
from .models import GroupsResponse, HealthResponse

__all__ = ["GroupStreamBridge", "GroupsResponse", "HealthResponse", "WebSocketGroupClient"]
