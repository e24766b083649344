"""Azure Resource Manager gateway.

Implements :class:`~ipback.providers.gateway.ProviderGateway` on top of the
sync ``azure-mgmt-network`` and ``azure-mgmt-compute`` clients, dispatched to
a dedicated thread pool so every call is an awaitable suspension point.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from loguru import logger

from ipback.errors import ProviderError, ResourceNotFound
from ipback.types import Resource, ResourceKind, ResourceRef, ResourceSpec

from .bodies import build_body
from .config import Azure

log = logger.bind(provider="azure")


def _translate(exc: AzureError, what: str) -> ProviderError:
    match exc:
        case ResourceNotFoundError():
            code = exc.error.code if exc.error is not None else None
            return ResourceNotFound(f"{what}: {exc.message}", code=code, status=exc.status_code)
        case HttpResponseError():
            code = exc.error.code if exc.error is not None else None
            if exc.status_code == 404:
                return ResourceNotFound(f"{what}: {exc.message}", code=code, status=404)
            return ProviderError(f"{what}: {exc.message}", code=code, status=exc.status_code)
        case _:
            return ProviderError(f"{what}: {exc}")


def _to_resource(ref: ResourceRef, model: Any) -> Resource:
    address = getattr(model, "ip_address", None) if ref.kind is ResourceKind.PUBLIC_IP_ADDRESS else None
    return Resource(ref=ref, id=str(model.id), address=address)


class AzureOperation[T]:
    """Wraps an ``LROPoller``; :meth:`result` waits for it in the thread pool."""

    def __init__(
        self,
        gateway: AzureGateway,
        poller: Any,
        what: str,
        convert: Callable[[Any], T],
    ) -> None:
        self._gateway = gateway
        self._poller = poller
        self._what = what
        self._convert = convert

    async def result(self) -> T:
        raw = await self._gateway._run(self._poller.result, what=self._what)
        return self._convert(raw)


class AzureGateway:
    """Stateless Azure gateway. Holds only immutable config and sync clients."""

    def __init__(
        self,
        config: Azure,
        network_client: Any,
        compute_client: Any,
        thread_pool: ThreadPoolExecutor,
        credential: Any = None,
    ) -> None:
        self._config = config
        self._network = network_client
        self._compute = compute_client
        self._pool = thread_pool
        self._credential = credential

    @classmethod
    def create(cls, config: Azure) -> AzureGateway:
        from injector import Injector

        from .clients import AzureModule

        return Injector([AzureModule(config)]).get(AzureGateway)

    @property
    def config(self) -> Azure:
        return self._config

    async def _run[T](self, fn: Callable[..., T], *args: object, what: str) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._pool, lambda: fn(*args))
        except AzureError as e:
            raise _translate(e, what) from e

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _begin_create_fn(self, ref: ResourceRef) -> Callable[[Any], Any]:
        rg = self._config.resource_group
        match ref.kind:
            case ResourceKind.VIRTUAL_NETWORK:
                return lambda body: self._network.virtual_networks.begin_create_or_update(rg, ref.name, body)
            case ResourceKind.SUBNET:
                return lambda body: self._network.subnets.begin_create_or_update(rg, ref.parent, ref.name, body)
            case ResourceKind.NETWORK_INTERFACE:
                return lambda body: self._network.network_interfaces.begin_create_or_update(rg, ref.name, body)
            case ResourceKind.PUBLIC_IP_ADDRESS:
                return lambda body: self._network.public_ip_addresses.begin_create_or_update(rg, ref.name, body)
            case ResourceKind.VIRTUAL_MACHINE:
                return lambda body: self._compute.virtual_machines.begin_create_or_update(rg, ref.name, body)
            case _:
                raise TypeError(f"create_or_update is not supported for {ref.kind}")

    def _begin_delete_fn(self, ref: ResourceRef) -> Callable[[], Any]:
        rg = self._config.resource_group
        match ref.kind:
            case ResourceKind.VIRTUAL_NETWORK:
                return lambda: self._network.virtual_networks.begin_delete(rg, ref.name)
            case ResourceKind.SUBNET:
                return lambda: self._network.subnets.begin_delete(rg, ref.parent, ref.name)
            case ResourceKind.NETWORK_INTERFACE:
                return lambda: self._network.network_interfaces.begin_delete(rg, ref.name)
            case ResourceKind.PUBLIC_IP_ADDRESS:
                return lambda: self._network.public_ip_addresses.begin_delete(rg, ref.name)
            case ResourceKind.VIRTUAL_MACHINE:
                return lambda: self._compute.virtual_machines.begin_delete(rg, ref.name)
            case ResourceKind.DISK:
                return lambda: self._compute.disks.begin_delete(rg, ref.name)

    def _get_fn(self, ref: ResourceRef) -> Callable[[], Any]:
        rg = self._config.resource_group
        match ref.kind:
            case ResourceKind.VIRTUAL_NETWORK:
                return lambda: self._network.virtual_networks.get(rg, ref.name)
            case ResourceKind.SUBNET:
                return lambda: self._network.subnets.get(rg, ref.parent, ref.name)
            case ResourceKind.NETWORK_INTERFACE:
                return lambda: self._network.network_interfaces.get(rg, ref.name)
            case ResourceKind.PUBLIC_IP_ADDRESS:
                return lambda: self._network.public_ip_addresses.get(rg, ref.name)
            case ResourceKind.VIRTUAL_MACHINE:
                return lambda: self._compute.virtual_machines.get(rg, ref.name)
            case ResourceKind.DISK:
                return lambda: self._compute.disks.get(rg, ref.name)

    # -------------------------------------------------------------------------
    # ProviderGateway
    # -------------------------------------------------------------------------

    async def begin_create_or_update(self, ref: ResourceRef, spec: ResourceSpec) -> AzureOperation[Resource]:
        body = build_body(self._config, ref, spec)
        begin = self._begin_create_fn(ref)
        what = f"create_or_update {ref}"
        log.debug("Begin {what}", what=what)
        poller = await self._run(begin, body, what=what)
        return AzureOperation(self, poller, what, lambda model: _to_resource(ref, model))

    async def begin_delete(self, ref: ResourceRef) -> AzureOperation[None]:
        what = f"delete {ref}"
        log.debug("Begin {what}", what=what)
        poller = await self._run(self._begin_delete_fn(ref), what=what)
        return AzureOperation(self, poller, what, lambda _: None)

    async def get(self, ref: ResourceRef) -> Resource:
        model = await self._run(self._get_fn(ref), what=f"get {ref}")
        return _to_resource(ref, model)

    async def close(self) -> None:
        for client in (self._network, self._compute, self._credential):
            close = getattr(client, "close", None)
            if close is not None:
                close()
        self._pool.shutdown(wait=False)
