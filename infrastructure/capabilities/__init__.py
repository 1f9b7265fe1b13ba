from .static_capability_provider import StaticCapabilityProvider

__all__ = ['StaticCapabilityProvider']
