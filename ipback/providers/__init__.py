"""Provider gateways."""

from .gateway import Operation, ProviderGateway, create_or_update, delete

__all__ = ["Operation", "ProviderGateway", "create_or_update", "delete"]
