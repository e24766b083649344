"""Provider gateway protocol.

The acquisition engine talks to the cloud only through this interface. A
gateway holds immutable config and clients. All run state lives in the
provisioner, hunters and coordinator that call it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ipback.types import Resource, ResourceRef, ResourceSpec


@runtime_checkable
class Operation[T](Protocol):
    """Handle to a long-running provider operation."""

    async def result(self) -> T:
        """Wait until the operation reaches a terminal state.

        Returns
        -------
        T
            The terminal result.

        Raises
        ------
        ProviderError
            The operation failed.
        """
        ...


@runtime_checkable
class ProviderGateway(Protocol):
    """Create-or-update, delete and read for the supported resource kinds.

    Every method raises :class:`~ipback.errors.ProviderError` on failure;
    :class:`~ipback.errors.ResourceNotFound` when the resource is missing.
    """

    async def begin_create_or_update(self, ref: ResourceRef, spec: ResourceSpec) -> Operation[Resource]:
        """Start an idempotent create-or-update of ``ref``.

        Parameters
        ----------
        ref
            Kind and name of the resource.
        spec
            Provider-neutral request spec. Its type must match ``ref.kind``.
        """
        ...

    async def begin_delete(self, ref: ResourceRef) -> Operation[None]:
        """Start deleting ``ref``."""
        ...

    async def get(self, ref: ResourceRef) -> Resource:
        """Read the current state of ``ref``."""
        ...

    async def close(self) -> None:
        """Release clients and worker threads."""
        ...


async def create_or_update(gateway: ProviderGateway, ref: ResourceRef, spec: ResourceSpec) -> Resource:
    """Start a create-or-update and wait for its terminal result."""
    operation = await gateway.begin_create_or_update(ref, spec)
    return await operation.result()


async def delete(gateway: ProviderGateway, ref: ResourceRef) -> None:
    """Start a delete and wait for it to finish."""
    operation = await gateway.begin_delete(ref)
    await operation.result()
