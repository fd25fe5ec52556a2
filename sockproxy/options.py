import os
from collections.abc import Mapping
from dataclasses import dataclass

from sockproxy import exceptions

DEFAULT_SOCKET_PATH = "/var/run/docker.sock"
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 3277
DEFAULT_BACKEND_TIMEOUT = 60.0

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("", "0", "false", "no", "off")


@dataclass(frozen=True)
class ProxyConfig:
    """
    Process-wide proxy configuration.

    Built once at startup and passed to every component that needs it.
    Instances are frozen, so they can be shared between concurrent requests.
    """

    socket_path: str = DEFAULT_SOCKET_PATH
    """Filesystem path of the backend's Unix domain socket."""
    api_key: str | None = None
    """If set, every forwarded request carries `x-api-key: <api_key>`."""
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT
    backend_timeout: float | None = DEFAULT_BACKEND_TIMEOUT
    """Deadline in seconds for one backend exchange. `None` waits forever."""
    require_api_key: bool = False
    """Reject client requests whose x-api-key header does not match `api_key`."""

    def __post_init__(self):
        if not self.socket_path:
            raise exceptions.OptionsError("Backend socket path must not be empty.")
        if not 0 <= self.listen_port <= 65535:
            raise exceptions.OptionsError(
                f"Invalid listen port: {self.listen_port!r}"
            )
        if self.backend_timeout is not None and self.backend_timeout <= 0:
            raise exceptions.OptionsError(
                f"Backend timeout must be positive: {self.backend_timeout!r}"
            )
        if self.require_api_key and not self.api_key:
            raise exceptions.OptionsError(
                "Requiring a client API key needs an API key to be configured."
            )

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides
    ) -> "ProxyConfig":
        """
        Read the configuration from environment variables:

        - PORT: listen port (default 3277)
        - LISTEN_HOST: listen address (default 0.0.0.0)
        - SOCKET_PATH: backend socket (default /var/run/docker.sock)
        - API_KEY: token injected as x-api-key
        - BACKEND_TIMEOUT: seconds, 0 disables the deadline
        - REQUIRE_API_KEY: reject clients without the matching x-api-key

        Keyword arguments take precedence over the environment.
        """
        if environ is None:
            environ = os.environ

        kwargs: dict = {}
        if port := environ.get("PORT"):
            kwargs["listen_port"] = _parse_int("PORT", port)
        if host := environ.get("LISTEN_HOST"):
            kwargs["listen_host"] = host
        if socket_path := environ.get("SOCKET_PATH"):
            kwargs["socket_path"] = socket_path
        if api_key := environ.get("API_KEY"):
            kwargs["api_key"] = api_key
        if (timeout := environ.get("BACKEND_TIMEOUT")) is not None:
            kwargs["backend_timeout"] = parse_timeout(timeout)
        if (require := environ.get("REQUIRE_API_KEY")) is not None:
            kwargs["require_api_key"] = _parse_bool("REQUIRE_API_KEY", require)
        kwargs.update(overrides)
        return cls(**kwargs)


def parse_timeout(value: str) -> float | None:
    """Parse a timeout in seconds. Zero means no deadline."""
    try:
        timeout = float(value)
    except ValueError:
        raise exceptions.OptionsError(f"Invalid timeout: {value!r}") from None
    if timeout < 0:
        raise exceptions.OptionsError(f"Invalid timeout: {value!r}")
    return timeout or None


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise exceptions.OptionsError(f"Invalid {name}: {value!r}") from None


def _parse_bool(name: str, value: str) -> bool:
    value = value.strip().lower()
    if value in _TRUE:
        return True
    elif value in _FALSE:
        return False
    raise exceptions.OptionsError(f"Invalid {name}: {value!r}")
