"""Policy module — assignment configuration."""

from peerreview.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
