"""Label policy: well-known keys, restricted domains and propagation rules.

The policy is an immutable value built once when the provider is
constructed; extending it returns a new policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from capi_provider.apis import wellknown

KARPENTER_WELL_KNOWN_LABELS: FrozenSet[str] = frozenset(
    {
        wellknown.NODE_POOL_LABEL_KEY,
        wellknown.LABEL_TOPOLOGY_ZONE,
        wellknown.LABEL_TOPOLOGY_REGION,
        wellknown.LABEL_INSTANCE_TYPE_STABLE,
        wellknown.LABEL_ARCH_STABLE,
        wellknown.LABEL_OS_STABLE,
        wellknown.CAPACITY_TYPE_LABEL_KEY,
        wellknown.LABEL_WINDOWS_BUILD,
    }
)

PROVIDER_WELL_KNOWN_LABELS: FrozenSet[str] = frozenset(
    {
        wellknown.INSTANCE_SIZE_LABEL_KEY,
        wellknown.INSTANCE_FAMILY_LABEL_KEY,
        wellknown.INSTANCE_CPU_LABEL_KEY,
        wellknown.INSTANCE_MEMORY_LABEL_KEY,
    }
)

KARPENTER_RESTRICTED_LABEL_DOMAINS: FrozenSet[str] = frozenset({"kubernetes.io", "k8s.io", wellknown.KARPENTER_GROUP})

# Subdomains of restricted domains that may still be set by users
LABEL_DOMAIN_EXCEPTIONS: FrozenSet[str] = frozenset(
    {"kops.k8s.io", "node.kubernetes.io", wellknown.NODE_RESTRICTION_LABEL_DOMAIN}
)


def label_domain(key: str) -> str:
    """Return the DNS prefix of a label key, or the whole key when it has none."""
    return key.split("/", 1)[0]


def _in_domain(domain: str, parent: str) -> bool:
    return domain == parent or domain.endswith("." + parent)


@dataclass(frozen=True)
class LabelPolicy:
    well_known_labels: FrozenSet[str] = field(
        default_factory=lambda: KARPENTER_WELL_KNOWN_LABELS | PROVIDER_WELL_KNOWN_LABELS
    )
    restricted_label_domains: FrozenSet[str] = field(
        default_factory=lambda: KARPENTER_RESTRICTED_LABEL_DOMAINS | {wellknown.PROVIDER_GROUP}
    )
    # Reject claim keys that a group does not define unless they are well known
    strict_undefined_labels: bool = False

    @classmethod
    def default(cls) -> "LabelPolicy":
        return cls()

    def extend(
        self,
        well_known_labels: Iterable[str] = (),
        restricted_label_domains: Iterable[str] = (),
        strict_undefined_labels: Optional[bool] = None,
    ) -> "LabelPolicy":
        return replace(
            self,
            well_known_labels=self.well_known_labels | frozenset(well_known_labels),
            restricted_label_domains=self.restricted_label_domains | frozenset(restricted_label_domains),
            strict_undefined_labels=(
                self.strict_undefined_labels if strict_undefined_labels is None else strict_undefined_labels
            ),
        )

    def is_restricted(self, key: str) -> bool:
        domain = label_domain(key) if "/" in key else ""
        if not domain:
            return False
        if any(_in_domain(domain, exception) for exception in LABEL_DOMAIN_EXCEPTIONS):
            return False
        return any(_in_domain(domain, restricted) for restricted in self.restricted_label_domains)

    def allow_undefined(self) -> Optional[FrozenSet[str]]:
        """Keys exempt from the undefined-label check, or ``None`` in lenient mode."""
        if self.strict_undefined_labels:
            return self.well_known_labels
        return None


def is_propagated(key: str) -> bool:
    """True when Cluster API propagates ``key`` from a template to the node."""
    domain = label_domain(key)
    if domain == wellknown.NODE_ROLE_LABEL_PREFIX:
        return True
    return _in_domain(domain, wellknown.NODE_RESTRICTION_LABEL_DOMAIN) or _in_domain(
        domain, wellknown.MANAGED_NODE_LABEL_DOMAIN
    )


def managed_node_labels(labels: Mapping[str, str]) -> Dict[str, str]:
    return {key: value for key, value in labels.items() if is_propagated(key)}
