"""Azure client wiring with dependency injection.

Usage:
    >>> from injector import Injector
    >>> from ipback.providers.azure import Azure, AzureGateway, AzureModule
    >>>
    >>> injector = Injector([AzureModule(Azure(subscription_id="...", resource_group="rg", location="westeurope"))])
    >>> gateway = injector.get(AzureGateway)
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from azure.core.credentials import TokenCredential
from azure.identity import DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.network import NetworkManagementClient
from injector import Binder, Module, provider, singleton

from .config import Azure
from .gateway import AzureGateway


class AzureModule(Module):
    """DI module that provides Azure credentials, SDK clients and the gateway."""

    def __init__(self, config: Azure) -> None:
        self._config = config

    def configure(self, binder: Binder) -> None:
        binder.bind(Azure, to=self._config)

    @singleton
    @provider
    def provide_credential(self) -> TokenCredential:
        """Environment, managed identity or Azure CLI login, whichever is found first."""
        return DefaultAzureCredential()

    @singleton
    @provider
    def provide_network(self, credential: TokenCredential, config: Azure) -> NetworkManagementClient:
        return NetworkManagementClient(credential, config.subscription_id)

    @singleton
    @provider
    def provide_compute(self, credential: TokenCredential, config: Azure) -> ComputeManagementClient:
        return ComputeManagementClient(credential, config.subscription_id)

    @singleton
    @provider
    def provide_thread_pool(self, config: Azure) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=config.thread_pool_size, thread_name_prefix="azure-io")

    @singleton
    @provider
    def provide_gateway(
        self,
        config: Azure,
        credential: TokenCredential,
        network: NetworkManagementClient,
        compute: ComputeManagementClient,
        thread_pool: ThreadPoolExecutor,
    ) -> AzureGateway:
        return AzureGateway(
            config=config,
            network_client=network,
            compute_client=compute,
            thread_pool=thread_pool,
            credential=credential,
        )


__all__ = ["AzureModule"]
