"""Pydantic schemas defining the provider's configuration contract."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from capi_provider.cloudprovider.labels import LabelPolicy
from capi_provider.core.polling import PollPolicy


class ClusterAPIConnection(BaseModel):
    """How to reach the management cluster that holds the Cluster API objects.

    A kubeconfig path wins over a URL. With neither set, the workload
    cluster's credentials are used.
    """

    kubeconfig: Optional[str] = None
    url: Optional[str] = None
    token: Optional[str] = None
    certificate_authority_data: Optional[str] = None
    skip_tls_verify: bool = False

    @model_validator(mode="after")
    def check_tls(self) -> "ClusterAPIConnection":
        if self.skip_tls_verify and not self.url:
            raise ValueError("skip_tls_verify requires url")
        return self

    def uses_workload_cluster(self) -> bool:
        return not self.kubeconfig and not self.url


class ProvisioningConfig(BaseModel):
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    poll_timeout_seconds: float = Field(default=60.0, gt=0)

    @model_validator(mode="after")
    def check_interval(self) -> "ProvisioningConfig":
        if self.poll_interval_seconds > self.poll_timeout_seconds:
            raise ValueError("poll_interval_seconds must not exceed poll_timeout_seconds")
        return self

    def poll_policy(self) -> PollPolicy:
        return PollPolicy(interval=self.poll_interval_seconds, timeout=self.poll_timeout_seconds, immediate=True)


class LabelPolicyConfig(BaseModel):
    well_known_labels: List[str] = Field(default_factory=list)
    restricted_label_domains: List[str] = Field(default_factory=list)
    strict_undefined_labels: bool = False

    def label_policy(self) -> LabelPolicy:
        return LabelPolicy.default().extend(
            well_known_labels=self.well_known_labels,
            restricted_label_domains=self.restricted_label_domains,
            strict_undefined_labels=self.strict_undefined_labels,
        )


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_logs: bool = False


class ProviderSettings(BaseModel):
    cluster_api: ClusterAPIConnection = Field(default_factory=ClusterAPIConnection)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    labels: LabelPolicyConfig = Field(default_factory=LabelPolicyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def redacted(self) -> dict:
        payload = self.model_dump(mode="json")
        if payload["cluster_api"].get("token"):
            payload["cluster_api"]["token"] = "***"
        return payload


__all__ = [
    "ClusterAPIConnection",
    "LabelPolicyConfig",
    "LoggingConfig",
    "ProviderSettings",
    "ProvisioningConfig",
]
