"""Exceptions raised while provisioning fixture databases."""

from __future__ import annotations


class ProvisioningError(RuntimeError):
    """Base class for provisioning failures."""


class ResetError(ProvisioningError):
    """Raised when a region cannot be dropped, recreated or rebound."""


class SeedError(ProvisioningError):
    """Raised when fixture data cannot be loaded into a region."""


class IntrospectionError(ProvisioningError):
    """Raised when the table listing of a region cannot be read."""


__all__ = ["IntrospectionError", "ProvisioningError", "ResetError", "SeedError"]
