"""Providers over the Cluster API resources the engine mutates."""

from .groups import GroupProvider
from .units import UnitProvider

__all__ = ["GroupProvider", "UnitProvider"]
