"""Well-known label and annotation keys shared with Cluster API and Karpenter."""

from __future__ import annotations

# API groups
CLUSTER_API_GROUP = "cluster.x-k8s.io"
KARPENTER_GROUP = "karpenter.sh"
PROVIDER_GROUP = "karpenter.cluster.x-k8s.io"

# Scale-from-zero capacity annotations on a ScalableGroup
CPU_KEY = "capacity.cluster-autoscaler.kubernetes.io/cpu"
MEMORY_KEY = "capacity.cluster-autoscaler.kubernetes.io/memory"
GPU_COUNT_KEY = "capacity.cluster-autoscaler.kubernetes.io/gpu-count"
GPU_TYPE_KEY = "capacity.cluster-autoscaler.kubernetes.io/gpu-type"
DISK_CAPACITY_KEY = "capacity.cluster-autoscaler.kubernetes.io/ephemeral-disk"
LABELS_KEY = "capacity.cluster-autoscaler.kubernetes.io/labels"
TAINTS_KEY = "capacity.cluster-autoscaler.kubernetes.io/taints"
MAX_PODS_KEY = "capacity.cluster-autoscaler.kubernetes.io/maxPods"

# Binding between a NodeClaim and its Unit, "namespace/name"
MACHINE_ANNOTATION = "cluster.x-k8s.io/machine"
# Marks a Unit as the one to remove on the next scale down
DELETE_MACHINE_ANNOTATION = "cluster.x-k8s.io/delete-machine"
# Back-reference from a Unit to its owning ScalableGroup
DEPLOYMENT_NAME_LABEL = "cluster.x-k8s.io/deployment-name"
# Marks a Unit as claimed by this provider
NODE_POOL_MEMBER_LABEL = "node.cluster.x-k8s.io/karpenter-member"

# Cluster API metadata propagation domains
NODE_ROLE_LABEL_PREFIX = "node-role.kubernetes.io"
NODE_RESTRICTION_LABEL_DOMAIN = "node-restriction.kubernetes.io"
MANAGED_NODE_LABEL_DOMAIN = "node.cluster.x-k8s.io"

# Kubernetes well-known node labels
LABEL_TOPOLOGY_ZONE = "topology.kubernetes.io/zone"
LABEL_TOPOLOGY_REGION = "topology.kubernetes.io/region"
LABEL_INSTANCE_TYPE_STABLE = "node.kubernetes.io/instance-type"
LABEL_ARCH_STABLE = "kubernetes.io/arch"
LABEL_OS_STABLE = "kubernetes.io/os"
LABEL_WINDOWS_BUILD = "node.kubernetes.io/windows-build"
LABEL_HOSTNAME = "kubernetes.io/hostname"

# Karpenter well-known labels
CAPACITY_TYPE_LABEL_KEY = "karpenter.sh/capacity-type"
CAPACITY_TYPE_ON_DEMAND = "on-demand"
NODE_POOL_LABEL_KEY = "karpenter.sh/nodepool"

# Provider labels that can be selected on and are propagated to the node
INSTANCE_SIZE_LABEL_KEY = PROVIDER_GROUP + "/instance-size"
INSTANCE_FAMILY_LABEL_KEY = PROVIDER_GROUP + "/instance-family"
INSTANCE_MEMORY_LABEL_KEY = PROVIDER_GROUP + "/instance-memory"
INSTANCE_CPU_LABEL_KEY = PROVIDER_GROUP + "/instance-cpu"

PROVIDER_NAME = "clusterapi"
