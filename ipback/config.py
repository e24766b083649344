"""Layered run configuration.

Sources, lowest precedence first:

1. built-in defaults
2. ``~/.ipback/defaults.toml`` (global)
3. ``ipback.toml`` in the project directory
4. environment variables (``AZURE_SUBSCRIPTION_ID``, ``IPBACK_*``)
5. explicit overrides (CLI flags)

Every layer is a raw nested dict with the tables ``run``, ``names``,
``azure`` and ``log``. Layers are deep-merged and then resolved into a
validated, immutable :class:`Settings`. Validation happens before any
provider call is made.
"""

from __future__ import annotations

import dataclasses
import ipaddress
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ipback.errors import ConfigError
from ipback.logging import LogConfig
from ipback.providers.azure.config import Azure
from ipback.retry import DEFAULT_COOLDOWN, DEFAULT_THROTTLE_MARKERS
from ipback.types import Naming

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".ipback" / "defaults.toml"
DEFAULT_LOG_DIR = Path.home() / ".ipback" / "logs"
PROJECT_CONFIG_NAME = "ipback.toml"

DEFAULT_SETTLE_DELAY = 10.0

# env var -> (table, key)
ENV_VARS: dict[str, tuple[str, str]] = {
    "AZURE_SUBSCRIPTION_ID": ("azure", "subscription_id"),
    "IPBACK_RESOURCE_GROUP": ("azure", "resource_group"),
    "IPBACK_LOCATION": ("azure", "location"),
    "IPBACK_TARGET_ADDRESS": ("run", "target_address"),
    "IPBACK_FLEET_SIZE": ("run", "fleet_size"),
    "IPBACK_MAX_ATTEMPTS": ("run", "max_attempts"),
    "IPBACK_VM_NAME": ("names", "virtual_machine"),
    "IPBACK_VNET_NAME": ("names", "virtual_network"),
    "IPBACK_SUBNET_NAME": ("names", "subnet"),
    "IPBACK_NIC_NAME": ("names", "network_interface"),
    "IPBACK_DISK_NAME": ("names", "disk"),
    "IPBACK_PIP_NAME": ("names", "public_ip_address"),
    "IPBACK_LOG_DIR": ("log", "directory"),
}


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Acquisition engine parameters.

    Args:
        fleet_size: Number of slots built and hunted in parallel.
        target_address: The IPv4 address being hunted, stored in canonical form.
        naming: Base names for every resource kind.
        settle_delay: Seconds between attaching an address and reading it back.
        throttle_cooldown: Seconds to wait after a throttled provider call.
        throttle_markers: Error-text substrings that identify throttling.
        spot: Discounted (spot) instead of on-demand pricing.
        max_attempts: Fleet-wide cap on hunt iterations. None is unbounded.
        keep_losers: Keep losing slots' resources after a commit.
        teardown_on_abort: Tear down every slot after a fatal error.
    """

    fleet_size: int
    target_address: str
    naming: Naming = Naming()
    settle_delay: float = DEFAULT_SETTLE_DELAY
    throttle_cooldown: float = DEFAULT_COOLDOWN
    throttle_markers: tuple[str, ...] = DEFAULT_THROTTLE_MARKERS
    spot: bool = True
    max_attempts: int | None = None
    keep_losers: bool = False
    teardown_on_abort: bool = False

    def __post_init__(self) -> None:
        if self.fleet_size <= 0:
            raise ConfigError(f"fleet_size must be > 0, got {self.fleet_size}")
        if self.max_attempts is not None and self.max_attempts <= 0:
            raise ConfigError(f"max_attempts must be > 0, got {self.max_attempts}")
        if self.settle_delay < 0:
            raise ConfigError(f"settle_delay must be >= 0, got {self.settle_delay}")
        if self.throttle_cooldown < 0:
            raise ConfigError(f"throttle_cooldown must be >= 0, got {self.throttle_cooldown}")
        if not self.throttle_markers:
            raise ConfigError("throttle_markers must not be empty")
        try:
            address = ipaddress.ip_address(self.target_address)
        except ValueError:
            raise ConfigError(f"target_address is not a valid IP address: {self.target_address!r}") from None
        if address.version != 4:
            raise ConfigError(f"target_address must be an IPv4 address, got {self.target_address!r}")
        object.__setattr__(self, "target_address", str(address))


@dataclass(frozen=True, slots=True)
class Settings:
    run: RunConfig
    azure: Azure
    log: LogConfig = field(default_factory=LogConfig)


# =============================================================================
# Raw layers
# =============================================================================


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def env_overrides(environ: Mapping[str, str] | None = None) -> RawConfig:
    """Collect ``IPBACK_*`` and ``AZURE_SUBSCRIPTION_ID`` into a raw layer."""
    environ = os.environ if environ is None else environ
    raw: RawConfig = {}
    for var, (table, key) in ENV_VARS.items():
        value = environ.get(var)
        if value:
            raw.setdefault(table, {})[key] = value
    return raw


def load_config(
    *,
    config_file: Path | None = None,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: RawConfig | None = None,
) -> RawConfig:
    """Merge every configuration layer into one raw dict.

    ``config_file`` replaces the project-level ``ipback.toml`` lookup and
    must exist when given.
    """
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    if config_file is not None:
        if not config_file.is_file():
            raise ConfigError(f"Config file not found: {config_file}")
        project_cfg = _read_toml(config_file)
    else:
        project_cfg = _read_toml((project_dir or Path.cwd()) / PROJECT_CONFIG_NAME)

    merged = _deep_merge(global_cfg, project_cfg)
    merged = _deep_merge(merged, env_overrides(environ))
    merged = _deep_merge(merged, overrides or {})
    for table in ("run", "names", "azure", "log"):
        merged.setdefault(table, {})
    return merged


# =============================================================================
# Resolution
# =============================================================================


def _as_int(table: str, key: str, value: object) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{table}.{key} must be an integer, got {value!r}")
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ConfigError(f"{table}.{key} must be an integer, got {value!r}") from None


def _as_float(table: str, key: str, value: object) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{table}.{key} must be a number, got {value!r}")
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"{table}.{key} must be a number, got {value!r}") from None


def _as_markers(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(m.strip() for m in value.split(",") if m.strip())
    if isinstance(value, list | tuple):
        return tuple(str(m) for m in value)
    raise ConfigError(f"run.throttle_markers must be a list or comma-separated string, got {value!r}")


def _as_bool(table: str, key: str, value: object) -> bool:
    match value:
        case bool():
            return value
        case str() if value.lower() in ("1", "true", "yes", "on"):
            return True
        case str() if value.lower() in ("0", "false", "no", "off"):
            return False
        case _:
            raise ConfigError(f"{table}.{key} must be a boolean, got {value!r}")


def _check_keys(table: str, raw: Mapping[str, Any], cls: type) -> None:
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in [{table}]: {', '.join(unknown)}")


def _build_naming(raw: RawConfig) -> Naming:
    _check_keys("names", raw, Naming)
    for key, value in raw.items():
        if not isinstance(value, str) or not value:
            raise ConfigError(f"names.{key} must be a non-empty string, got {value!r}")
    return Naming(**raw)


def _build_run(raw: RawConfig, naming: Naming) -> RunConfig:
    _check_keys("run", raw, RunConfig)
    raw = dict(raw)
    raw.pop("naming", None)

    if "fleet_size" not in raw:
        raise ConfigError("run.fleet_size is not set (IPBACK_FLEET_SIZE)")
    if not raw.get("target_address"):
        raise ConfigError("run.target_address is not set (IPBACK_TARGET_ADDRESS)")

    kwargs: dict[str, Any] = {
        "fleet_size": _as_int("run", "fleet_size", raw["fleet_size"]),
        "target_address": str(raw["target_address"]).strip(),
        "naming": naming,
    }
    if raw.get("max_attempts") is not None:
        kwargs["max_attempts"] = _as_int("run", "max_attempts", raw["max_attempts"])
    for key in ("settle_delay", "throttle_cooldown"):
        if key in raw:
            kwargs[key] = _as_float("run", key, raw[key])
    for key in ("spot", "keep_losers", "teardown_on_abort"):
        if key in raw:
            kwargs[key] = _as_bool("run", key, raw[key])
    if "throttle_markers" in raw:
        kwargs["throttle_markers"] = _as_markers(raw["throttle_markers"])
    return RunConfig(**kwargs)


def _build_azure(raw: RawConfig) -> Azure:
    _check_keys("azure", raw, Azure)
    for key in ("subscription_id", "resource_group", "location"):
        if not raw.get(key):
            env = next((v for v, (t, k) in ENV_VARS.items() if (t, k) == ("azure", key)), None)
            raise ConfigError(f"azure.{key} is not set ({env})")
    raw = dict(raw)
    if "thread_pool_size" in raw:
        raw["thread_pool_size"] = _as_int("azure", "thread_pool_size", raw["thread_pool_size"])
    return Azure(**raw)


def _build_log(raw: RawConfig) -> LogConfig:
    _check_keys("log", raw, LogConfig)
    raw = dict(raw)
    if "level" in raw:
        raw["level"] = str(raw["level"]).upper()
        if raw["level"] not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ConfigError(f"log.level must be DEBUG, INFO, WARNING or ERROR, got {raw['level']!r}")
    if "console" in raw:
        raw["console"] = _as_bool("log", "console", raw["console"])
    if "retention" in raw:
        raw["retention"] = _as_int("log", "retention", raw["retention"])
    raw.setdefault("directory", str(DEFAULT_LOG_DIR))
    if not raw["directory"]:
        raw["directory"] = None
    return LogConfig(**raw)


def resolve_settings(raw: RawConfig) -> Settings:
    """Validate a merged raw config and build :class:`Settings`."""
    naming = _build_naming(raw.get("names", {}))
    return Settings(
        run=_build_run(raw.get("run", {}), naming),
        azure=_build_azure(raw.get("azure", {})),
        log=_build_log(raw.get("log", {})),
    )


def load_settings(**kwargs: Any) -> Settings:
    """:func:`load_config` followed by :func:`resolve_settings`."""
    return resolve_settings(load_config(**kwargs))


@dataclass(frozen=True, slots=True)
class CleanupSettings:
    """What ``ipback cleanup`` needs: names and credentials, no target."""

    fleet_size: int
    naming: Naming
    azure: Azure
    log: LogConfig
    throttle_cooldown: float = DEFAULT_COOLDOWN
    throttle_markers: tuple[str, ...] = DEFAULT_THROTTLE_MARKERS


def resolve_cleanup(raw: RawConfig) -> CleanupSettings:
    run = raw.get("run", {})
    _check_keys("run", run, RunConfig)
    if "fleet_size" not in run:
        raise ConfigError("run.fleet_size is not set (IPBACK_FLEET_SIZE)")
    fleet_size = _as_int("run", "fleet_size", run["fleet_size"])
    if fleet_size <= 0:
        raise ConfigError(f"fleet_size must be > 0, got {fleet_size}")
    kwargs: dict[str, Any] = {}
    if "throttle_cooldown" in run:
        kwargs["throttle_cooldown"] = _as_float("run", "throttle_cooldown", run["throttle_cooldown"])
    if "throttle_markers" in run:
        kwargs["throttle_markers"] = _as_markers(run["throttle_markers"])
        if not kwargs["throttle_markers"]:
            raise ConfigError("throttle_markers must not be empty")
    return CleanupSettings(
        fleet_size=fleet_size,
        naming=_build_naming(raw.get("names", {})),
        azure=_build_azure(raw.get("azure", {})),
        log=_build_log(raw.get("log", {})),
        **kwargs,
    )
