"""Server configuration from an optional YAML file with environment variable overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    msg = f"{name} must be a boolean (true/false), got {value!r}."
    raise ValueError(msg)


def _env_bool(name: str, default: str) -> bool:
    return _parse_bool(name, os.environ.get(name, default))


def _env_optional(name: str) -> str | None:
    return os.environ.get(name) or None


def _env_timeout(name: str, default: str) -> float | None:
    raw = os.environ.get(name, default).strip()
    if raw.lower() in {"", "none", "0"}:
        return None
    try:
        return float(raw)
    except ValueError:
        msg = f"{name} must be a number of seconds, got {raw!r}."
        raise ValueError(msg) from None


@dataclass(frozen=True)
class ServerConfig:
    """Process-wide settings for the workflow template server."""

    namespace: str = field(default_factory=lambda: os.environ.get("WORKFLOW_TEMPLATE_NAMESPACE", "default"))
    enable_client_auth: bool = field(
        default_factory=lambda: _env_bool("WORKFLOW_TEMPLATE_ENABLE_CLIENT_AUTH", "false")
    )
    kubeconfig_context: str | None = field(
        default_factory=lambda: _env_optional("WORKFLOW_TEMPLATE_KUBECONFIG_CONTEXT")
    )
    in_cluster: bool = field(default_factory=lambda: _env_bool("WORKFLOW_TEMPLATE_IN_CLUSTER", "false"))
    request_timeout_seconds: float | None = field(
        default_factory=lambda: _env_timeout("WORKFLOW_TEMPLATE_REQUEST_TIMEOUT", "30")
    )


# YAML key -> environment variable that overrides it
_ENV_OVERRIDES = {
    "namespace": "WORKFLOW_TEMPLATE_NAMESPACE",
    "enable_client_auth": "WORKFLOW_TEMPLATE_ENABLE_CLIENT_AUTH",
    "kubeconfig_context": "WORKFLOW_TEMPLATE_KUBECONFIG_CONTEXT",
    "in_cluster": "WORKFLOW_TEMPLATE_IN_CLUSTER",
    "request_timeout_seconds": "WORKFLOW_TEMPLATE_REQUEST_TIMEOUT",
}


def _coerce(key: str, value: Any) -> Any:
    if key in ("enable_client_auth", "in_cluster"):
        if isinstance(value, bool):
            return value
        return _parse_bool(key, str(value))
    if key == "request_timeout_seconds":
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            msg = f"request_timeout_seconds must be a number, got {value!r}."
            raise ValueError(msg)
        return float(value) if value else None
    if value is None:
        return None
    return str(value)


def _load_file_values(path: Path) -> dict[str, Any]:
    """Parse a YAML server configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A dict of ServerConfig field values found in the file.

    Raises:
        ValueError: If the file is malformed or names an unknown setting.
    """
    raw = yaml.safe_load(path.read_text())

    if raw is None:
        return {}
    if not isinstance(raw, dict) or "server" not in raw:
        msg = f"Server config file {path} must contain a top-level 'server' key."
        raise ValueError(msg)

    section: Any = raw["server"] or {}
    if not isinstance(section, dict):
        msg = f"Server config file {path} has an invalid 'server' section, got {type(section).__name__}."
        raise ValueError(msg)

    known = {f.name for f in fields(ServerConfig)}
    unknown = sorted(set(section) - known)
    if unknown:
        msg = f"Server config file {path} has unknown settings: {', '.join(unknown)}."
        raise ValueError(msg)

    return {key: _coerce(key, value) for key, value in section.items()}


def load_server_config(path: Path | None = None) -> ServerConfig:
    """Load the server configuration.

    Reads the file path from ``WORKFLOW_TEMPLATE_SERVER_CONFIG`` when ``path`` is
    not given. A missing file is only an error when a path was requested
    explicitly. Environment variables take precedence over file values.
    """
    env_path = os.environ.get("WORKFLOW_TEMPLATE_SERVER_CONFIG")
    if path is None and env_path:
        path = Path(env_path)

    config = ServerConfig()
    if path is None:
        return config
    if not path.exists():
        msg = f"Server configuration file not found: {path}."
        raise FileNotFoundError(msg)

    file_values = {
        key: value for key, value in _load_file_values(path).items() if _ENV_OVERRIDES[key] not in os.environ
    }
    return replace(config, **file_values)


def validate_server_config(config: ServerConfig) -> None:
    """Validate the configuration at startup.

    Raises RuntimeError if the default namespace is empty, the request
    timeout is not positive, or both in-cluster and a kubeconfig context
    are requested.
    """
    errors: list[str] = []
    if not config.namespace:
        errors.append("namespace is empty")
    if config.request_timeout_seconds is not None and config.request_timeout_seconds <= 0:
        errors.append("request_timeout_seconds must be positive")
    if config.in_cluster and config.kubeconfig_context:
        errors.append("in_cluster and kubeconfig_context are mutually exclusive")

    if errors:
        detail = "; ".join(errors)
        msg = f"Server configuration errors: {detail}."
        raise RuntimeError(msg)
