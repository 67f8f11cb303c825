"""At-least-once alert delivery with a durable local retry queue."""

from .manager import DeliveryManager
from .queue import DurableQueue, RetrySweeper, SweepResult

__all__ = [
    "DeliveryManager",
    "DurableQueue",
    "RetrySweeper",
    "SweepResult",
]
