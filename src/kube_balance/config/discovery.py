"""Discovery target configuration."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Final

from kube_balance.domain.types import Port, port_from

from .backoff import BackoffPolicy
from .env import optional_env_int, optional_env_var, require_env_vars
from .errors import ConfigurationError

SERVICE_ENV: Final[str] = "KUBE_BALANCE_SERVICE"
PORT_ENV: Final[str] = "KUBE_BALANCE_PORT"
NAMESPACE_ENV: Final[str] = "KUBE_BALANCE_NAMESPACE"
WATCH_TIMEOUT_ENV: Final[str] = "KUBE_BALANCE_WATCH_TIMEOUT"

# Stay below the API server's default watch timeout so renewals are ours.
DEFAULT_WATCH_TIMEOUT_SECONDS: Final[int] = 290


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
    """Which service to watch and which of its ports to balance over.

    ``namespace`` of ``None`` means "the namespace of the active cluster
    context", resolved when discovery starts.
    """

    service_name: str
    port: Port
    namespace: str | None = None
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not self.service_name:
            raise ConfigurationError("Service name must not be empty")
        if self.watch_timeout_seconds <= 0:
            raise ConfigurationError("Watch timeout must be positive")

    @classmethod
    def for_service(
        cls,
        service_name: str,
        port: int | str | Port,
        *,
        namespace: str | None = None,
    ) -> DiscoveryConfig:
        """Build a config from a plain port number or port name."""

        return cls(service_name=service_name, port=port_from(port), namespace=namespace)

    def with_namespace(self, namespace: str) -> DiscoveryConfig:
        return replace(self, namespace=namespace)


def parse_port(value: str) -> Port:
    """Interpret ``value`` as a port number when numeric, else as a port name."""

    stripped = value.strip()
    try:
        return port_from(int(stripped)) if stripped.isdigit() else port_from(stripped)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid port: {value!r}") from exc


def get_discovery_config(
    *,
    service_name: str | None = None,
    port: str | None = None,
    namespace: str | None = None,
    backoff: BackoffPolicy | None = None,
) -> DiscoveryConfig:
    """Load the discovery target from the environment.

    Explicit arguments (e.g. command-line flags) take precedence; only the
    settings they leave unset are required from the environment.
    """

    required = [
        name for name, override in ((SERVICE_ENV, service_name), (PORT_ENV, port)) if not override
    ]
    values = require_env_vars(required)
    watch_timeout = optional_env_int(WATCH_TIMEOUT_ENV)
    return DiscoveryConfig(
        service_name=service_name or values[SERVICE_ENV],
        port=parse_port(port or values[PORT_ENV]),
        namespace=namespace or optional_env_var(NAMESPACE_ENV),
        backoff=backoff or BackoffPolicy(),
        watch_timeout_seconds=watch_timeout or DEFAULT_WATCH_TIMEOUT_SECONDS,
    )
