"""Network reachability derivation."""

from collectorstack.network.resolver import NetworkPolicyResolver

__all__ = ["NetworkPolicyResolver"]
