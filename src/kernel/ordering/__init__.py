"""
Board ordering: column and task positions.
"""

from src.kernel.ordering.position_manager import DEFAULT_COLUMNS, Outcome, PositionManager

__all__ = [
    "DEFAULT_COLUMNS",
    "Outcome",
    "PositionManager",
]
