"""Cluster API capacity provider for node autoscaling."""

from .cloudprovider import CloudProvider, InstanceType, LabelPolicy
from .config import ProviderSettings, load_settings
from .operator import build_cloud_provider

__all__ = [
    "CloudProvider",
    "InstanceType",
    "LabelPolicy",
    "ProviderSettings",
    "build_cloud_provider",
    "load_settings",
]

__version__ = "0.1.0"
