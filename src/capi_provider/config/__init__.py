"""Provider configuration schemas and loader."""

from .loader import dump_settings, load_settings
from .schema import ClusterAPIConnection, LabelPolicyConfig, LoggingConfig, ProviderSettings, ProvisioningConfig

__all__ = [
    "ClusterAPIConnection",
    "LabelPolicyConfig",
    "LoggingConfig",
    "ProviderSettings",
    "ProvisioningConfig",
    "dump_settings",
    "load_settings",
]
