"""Client package for backend services talking to the registry."""

from .registration import RegistrationClientError, RegistryRegistrationClient

__all__ = ["RegistrationClientError", "RegistryRegistrationClient"]
