"""Exception hierarchy for ipback."""

from __future__ import annotations


class IPBackError(Exception):
    """Base class for every error raised by ipback."""


class ConfigError(IPBackError):
    """Run configuration is missing or invalid. Raised before any provider call."""


class ProviderError(IPBackError):
    """A provider call failed.

    Carries the provider error code (e.g. ``SubscriptionRequestsThrottled``)
    and HTTP status when the provider reported them. The rate limiter decides
    from the message text whether the failure is a throttle or fatal.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status

    def __str__(self) -> str:
        text = super().__str__()
        if self.code and self.code not in text:
            return f"({self.code}) {text}"
        return text


class ResourceNotFound(ProviderError):
    """The referenced resource does not exist."""


class FleetAborted(IPBackError):
    """The run was aborted by a fatal error in one of the slots."""

    def __init__(self, slot: int, cause: BaseException) -> None:
        super().__init__(f"Slot {slot} failed: {cause}")
        self.slot = slot
        self.cause = cause
