"""Azure Resource Manager provider."""

from .config import Azure
from .gateway import AzureGateway, AzureOperation

__all__ = ["Azure", "AzureGateway", "AzureOperation"]
