"""Admission webhook that matches Kubernetes requests against ManifestIntegrityProfiles."""

__version__ = "0.1.0"

__all__ = [
    "admission",
    "client",
    "config",
    "constraint",
    "fake",
    "labels",
    "patterns",
    "profile",
    "server",
    "webhook",
]