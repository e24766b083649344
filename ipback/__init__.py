"""ipback - get a specific Azure public IP address back.

Azure hands out public addresses from a regional pool and never lets you
ask for a particular one. ipback builds a small fleet of throwaway virtual
machines and keeps re-allocating a public address on each of them until one
of them is handed the address you want.

Example:

    from ipback import Fleet, RunConfig, AzureGateway, Azure

    gateway = AzureGateway.create(Azure(subscription_id="...", resource_group="rg", location="francecentral"))
    result = await Fleet(RunConfig(fleet_size=4, target_address="20.19.8.7"), gateway).run()
    if result.winner:
        print(f"slot {result.winner.slot} holds {result.winner.binding.address}")
"""

__version__ = "0.3.0"

# Configuration
from ipback.config import RunConfig, Settings, load_settings

# Errors
from ipback.errors import ConfigError, FleetAborted, IPBackError, ProviderError, ResourceNotFound

# Events (ADT)
from ipback.events import (
    AddressAllocated,
    AddressCommitted,
    AddressObserved,
    AddressReleased,
    Callback,
    HuntStopped,
    IPBackEvent,
    ResourceDeleted,
    RunAborted,
    SlotProvisioned,
    SlotProvisioning,
    Throttled,
    compose,
    emit,
    use_callback,
)

# Engine
from ipback.fleet import Fleet, FleetResult
from ipback.hunter import AddressHunter
from ipback.provisioner import SlotProvisioner
from ipback.reaper import Reaper

# Providers
from ipback.providers import ProviderGateway
from ipback.providers.azure import Azure, AzureGateway

# Rate limiting
from ipback.retry import RateLimiter

# Core types
from ipback.types import Naming, ResourceKind, ResourceRef, Slot

__all__ = [
    "__version__",
    # Configuration
    "RunConfig",
    "Settings",
    "load_settings",
    # Errors
    "IPBackError",
    "ConfigError",
    "ProviderError",
    "ResourceNotFound",
    "FleetAborted",
    # Events
    "SlotProvisioning",
    "SlotProvisioned",
    "AddressAllocated",
    "AddressObserved",
    "AddressReleased",
    "AddressCommitted",
    "HuntStopped",
    "Throttled",
    "ResourceDeleted",
    "RunAborted",
    "IPBackEvent",
    "Callback",
    "emit",
    "compose",
    "use_callback",
    # Engine
    "Fleet",
    "FleetResult",
    "SlotProvisioner",
    "AddressHunter",
    "Reaper",
    "RateLimiter",
    # Providers
    "ProviderGateway",
    "Azure",
    "AzureGateway",
    # Types
    "Naming",
    "ResourceKind",
    "ResourceRef",
    "Slot",
]
