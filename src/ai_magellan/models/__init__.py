# models/__init__.py
from .listing import Listing
from .scheduler_state import SchedulerState

__all__ = [
    "Listing",
    "SchedulerState",
]
