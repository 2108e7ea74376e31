"""Node claim provisioning against Cluster API scalable groups."""

from .instancetype import InstanceType, InstanceTypeOverhead, Offering
from .labels import LabelPolicy
from .provider import CloudProvider, parse_machine_annotation
from .provisioning import ProvisioningAttempt, ProvisioningPhase

__all__ = [
    "CloudProvider",
    "InstanceType",
    "InstanceTypeOverhead",
    "LabelPolicy",
    "Offering",
    "ProvisioningAttempt",
    "ProvisioningPhase",
    "parse_machine_annotation",
]
