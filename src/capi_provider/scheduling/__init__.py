"""Scheduling requirements and resource fitting."""

from .requirements import Requirement, Requirements
from .resources import fits

__all__ = ["Requirement", "Requirements", "fits"]
