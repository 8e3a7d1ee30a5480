"""Configuration loading and validation."""

import json
import os
from dataclasses import dataclass, field
from agent.exceptions import ConfigError


DEFAULT_API_URL = "http://localhost:8787"
DEFAULT_OBFUSCATION_KEY = "overmind-client-encryption-key-32b"


@dataclass
class ModelConfig:
    """Configuration for the chat completion model."""
    provider: str = "openai"
    model_name: str = "gpt-4o-mini"
    base_url: str = DEFAULT_API_URL
    api_key: str = ""
    temperature: float = 0.7


@dataclass
class ProviderSettings:
    """Configuration for completion endpoint connectivity and retries."""
    connect_timeout: float = 5.0
    read_timeout: float = 120.0
    max_retries: int = 3


@dataclass
class ToolExecutionConfig:
    """Configuration for tool execution behavior."""
    outbound_timeout: float = 8.0
    search_url: str = "http://localhost:5000/api/tools/search"
    outline_url: str = "http://localhost:5000/api/tools/outline"
    parallel: bool = True


@dataclass
class RelayConfig:
    """Configuration for the connection registry and signal queue."""
    backend: str = "memory"  # "memory" or "sqlite"
    storage_path: str = "./data/relay.db"
    connection_ttl: float = 60.0
    signal_ttl: float = 30.0
    purge_interval: float = 60.0


@dataclass
class StreamConfig:
    """Configuration for the streamed turn protocol."""
    obfuscate: bool = True
    obfuscation_key: str = DEFAULT_OBFUSCATION_KEY
    sentinel: str = "[DONE]"


@dataclass
class StorageConfig:
    """Configuration for project and task storage."""
    projects_path: str = "./data/projects.db"


@dataclass
class AuthConfig:
    """Configuration for web authentication."""
    enabled: bool = False
    username: str = "admin"
    password_hash: str = ""
    api_key: str = ""


@dataclass
class TelemetryConfig:
    """Configuration for per-turn telemetry logging."""
    enabled: bool = False
    log_dir: str = "./data/metrics"
    otel_enabled: bool = False
    otel_endpoint: str | None = None
    otel_service_name: str = "overmind"


@dataclass
class AgentConfig:
    """Complete application configuration."""
    chat_model: ModelConfig = field(default_factory=ModelConfig)
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    tool_execution: ToolExecutionConfig = field(default_factory=ToolExecutionConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    prompt_profile: str = "default"
    max_steps: int = 25
    data_dir: str = "data"
    log_dir: str = "data/logs"
    log_level: str = "INFO"


def load_config(config_path: str = "config.json") -> AgentConfig:
    """Load configuration from JSON file with defaults."""
    if not os.path.exists(config_path):
        raw = {}
    else:
        try:
            with open(config_path, "r") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"Config in {config_path} must be a JSON object")

    data_dir = raw.get("data_dir", "data")

    chat_model = _load_model_settings(raw.get("chat_model", {}))
    env_base_url = os.getenv("AI_API_URL")
    if env_base_url:
        chat_model.base_url = env_base_url
    env_api_key = os.getenv("AI_API_KEY")
    if env_api_key:
        chat_model.api_key = env_api_key

    provider = _load_provider_settings(raw.get("provider", {}))
    tool_execution = _load_tool_execution_settings(raw.get("tool_execution", {}))
    relay = _load_relay_settings(raw.get("relay", {}), data_dir)
    stream = _load_stream_settings(raw.get("stream", {}))
    env_key = os.getenv("STREAM_OBFUSCATION_KEY")
    if env_key:
        stream.obfuscation_key = env_key

    storage = _load_storage_settings(raw.get("storage", {}), data_dir)
    auth = _load_auth_settings(raw.get("auth", {}))
    telemetry = _load_telemetry_settings(raw.get("telemetry", {}), data_dir)

    max_steps = _coerce_int(raw.get("max_steps", 25), "max_steps", 1)

    log_level = raw.get("log_level", "INFO")
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        raise ConfigError("log_level must be one of DEBUG, INFO, WARNING, ERROR")

    prompt_profile = raw.get("prompt_profile", "default")
    if not isinstance(prompt_profile, str) or not prompt_profile.strip():
        raise ConfigError("prompt_profile must be a non-empty string")

    # Ensure data directories exist
    log_dir = raw.get("log_dir", os.path.join(data_dir, "logs"))
    for d in [data_dir, log_dir, telemetry.log_dir]:
        os.makedirs(d, exist_ok=True)

    return AgentConfig(
        chat_model=chat_model,
        provider=provider,
        tool_execution=tool_execution,
        relay=relay,
        stream=stream,
        storage=storage,
        auth=auth,
        telemetry=telemetry,
        prompt_profile=prompt_profile.strip(),
        max_steps=max_steps,
        data_dir=data_dir,
        log_dir=log_dir,
        log_level=log_level,
    )


def _load_model_settings(raw: dict) -> ModelConfig:
    """Parse and validate the chat model settings."""
    defaults = ModelConfig()
    for key in ("provider", "model_name", "base_url"):
        value = raw.get(key, getattr(defaults, key))
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"chat_model.{key} must be a non-empty string")

    api_key = raw.get("api_key", "")
    if not isinstance(api_key, str):
        raise ConfigError("chat_model.api_key must be a string")

    return ModelConfig(
        provider=raw.get("provider", defaults.provider).strip(),
        model_name=raw.get("model_name", defaults.model_name).strip(),
        base_url=raw.get("base_url", defaults.base_url).strip(),
        api_key=api_key.strip(),
        temperature=_coerce_float(raw.get("temperature", 0.7), "chat_model.temperature", 0.0),
    )


def _load_provider_settings(raw: dict) -> ProviderSettings:
    """Parse and validate completion endpoint connectivity settings."""
    return ProviderSettings(
        connect_timeout=_coerce_float(raw.get("connect_timeout", 5.0), "provider.connect_timeout", 0.1),
        read_timeout=_coerce_float(raw.get("read_timeout", 120.0), "provider.read_timeout", 0.1),
        max_retries=_coerce_int(raw.get("max_retries", 3), "provider.max_retries", 1),
    )


def _load_tool_execution_settings(raw: dict) -> ToolExecutionConfig:
    """Parse and validate tool execution settings."""
    defaults = ToolExecutionConfig()
    outbound_timeout = _coerce_float(
        raw.get("outbound_timeout", defaults.outbound_timeout),
        "tool_execution.outbound_timeout",
        0.1,
    )
    if outbound_timeout >= 10:
        raise ConfigError("tool_execution.outbound_timeout must be below 10 seconds")

    urls = {}
    for key in ("search_url", "outline_url"):
        value = raw.get(key, getattr(defaults, key))
        if not isinstance(value, str) or not value.startswith(("http://", "https://")):
            raise ConfigError(f"tool_execution.{key} must be an http(s) URL")
        urls[key] = value

    parallel = raw.get("parallel", True)
    if not isinstance(parallel, bool):
        raise ConfigError("tool_execution.parallel must be a boolean")

    return ToolExecutionConfig(
        outbound_timeout=outbound_timeout,
        search_url=urls["search_url"],
        outline_url=urls["outline_url"],
        parallel=parallel,
    )


def _load_relay_settings(raw: dict, data_dir: str) -> RelayConfig:
    """Parse and validate relay settings."""
    backend = raw.get("backend", "memory")
    if backend not in ("memory", "sqlite"):
        raise ConfigError("relay.backend must be 'memory' or 'sqlite'")

    storage_path = raw.get("storage_path", os.path.join(data_dir, "relay.db"))
    if not isinstance(storage_path, str) or not storage_path.strip():
        raise ConfigError("relay.storage_path must be a non-empty string")

    return RelayConfig(
        backend=backend,
        storage_path=storage_path,
        connection_ttl=_coerce_float(raw.get("connection_ttl", 60.0), "relay.connection_ttl", 1.0),
        signal_ttl=_coerce_float(raw.get("signal_ttl", 30.0), "relay.signal_ttl", 1.0),
        purge_interval=_coerce_float(raw.get("purge_interval", 60.0), "relay.purge_interval", 1.0),
    )


def _load_stream_settings(raw: dict) -> StreamConfig:
    """Parse and validate streamed turn protocol settings."""
    obfuscate = raw.get("obfuscate", True)
    if not isinstance(obfuscate, bool):
        raise ConfigError("stream.obfuscate must be a boolean")

    key = raw.get("obfuscation_key", DEFAULT_OBFUSCATION_KEY)
    if not isinstance(key, str) or not key:
        raise ConfigError("stream.obfuscation_key must be a non-empty string")

    sentinel = raw.get("sentinel", "[DONE]")
    if not isinstance(sentinel, str) or not sentinel.strip():
        raise ConfigError("stream.sentinel must be a non-empty string")

    return StreamConfig(obfuscate=obfuscate, obfuscation_key=key, sentinel=sentinel)


def _load_storage_settings(raw: dict, data_dir: str) -> StorageConfig:
    """Parse and validate project storage settings."""
    projects_path = raw.get("projects_path", os.path.join(data_dir, "projects.db"))
    if not isinstance(projects_path, str) or not projects_path.strip():
        raise ConfigError("storage.projects_path must be a non-empty string")
    return StorageConfig(projects_path=projects_path)


def _load_auth_settings(raw: dict) -> AuthConfig:
    """Parse and validate auth settings."""
    enabled = raw.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError("auth.enabled must be a boolean")

    username = raw.get("username", "admin")
    if not isinstance(username, str) or not username.strip():
        raise ConfigError("auth.username must be a non-empty string")

    password_hash = raw.get("password_hash", "")
    if not isinstance(password_hash, str):
        raise ConfigError("auth.password_hash must be a string")

    api_key = raw.get("api_key", "")
    if not isinstance(api_key, str):
        raise ConfigError("auth.api_key must be a string")

    if enabled and not password_hash.strip() and not api_key.strip():
        raise ConfigError("auth.enabled requires password_hash or api_key")

    return AuthConfig(
        enabled=enabled,
        username=username.strip(),
        password_hash=password_hash.strip(),
        api_key=api_key.strip(),
    )


def _load_telemetry_settings(raw: dict, data_dir: str) -> TelemetryConfig:
    """Parse and validate telemetry settings."""
    enabled = raw.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError("telemetry.enabled must be a boolean")

    log_dir = raw.get("log_dir", os.path.join(data_dir, "metrics"))
    if not isinstance(log_dir, str) or not log_dir.strip():
        raise ConfigError("telemetry.log_dir must be a non-empty string")

    otel_enabled = raw.get("otel_enabled", False)
    if not isinstance(otel_enabled, bool):
        raise ConfigError("telemetry.otel_enabled must be a boolean")

    otel_endpoint = raw.get("otel_endpoint")
    if otel_endpoint is not None and (not isinstance(otel_endpoint, str) or not otel_endpoint.strip()):
        raise ConfigError("telemetry.otel_endpoint must be a non-empty string if provided")

    otel_service_name = raw.get("otel_service_name", "overmind")
    if not isinstance(otel_service_name, str) or not otel_service_name.strip():
        raise ConfigError("telemetry.otel_service_name must be a non-empty string")

    return TelemetryConfig(
        enabled=enabled,
        log_dir=log_dir,
        otel_enabled=otel_enabled,
        otel_endpoint=otel_endpoint.strip() if isinstance(otel_endpoint, str) else None,
        otel_service_name=otel_service_name.strip(),
    )


def _coerce_float(value: object, name: str, min_value: float) -> float:
    """Coerce config value to float with basic validation."""
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value


def _coerce_int(value: object, name: str, min_value: int) -> int:
    """Coerce config value to int with basic validation."""
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer")

    if value < min_value:
        raise ConfigError(f"{name} must be >= {min_value}")
    return value
