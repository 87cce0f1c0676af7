"""Cloud provider clients used by the provisioning saga."""

from .base import CloudProvider

__all__ = ["CloudProvider"]
