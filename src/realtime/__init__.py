"""
Realtime Package
=================
WebSocket broadcast channel for live sensor readings.
"""

from .broadcast import (
    IotReading,
    Sampler,
    uniform_sampler,
    BroadcastChannel,
    CONNECTED_MESSAGE,
)

__all__ = [
    "IotReading",
    "Sampler",
    "uniform_sampler",
    "BroadcastChannel",
    "CONNECTED_MESSAGE",
]
