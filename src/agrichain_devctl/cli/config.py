"""Configuration management for the AgriChain launcher."""

import json
import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from ..shared.configuration import (
    ConfigurationError,
    InvalidConfigurationError,
)

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

DEFAULT_NETWORK_COMMAND = [
    "npx",
    "ganache",
    "--port",
    "7545",
    "--deterministic",
    "--accounts",
    "10",
    "--hardfork",
    "london",
    "--chain.vmErrorsOnRPCResponse",
    "--database.dbPath",
    "./ganache_db",
    "--wallet.seed",
    "agrichain_seed_2024",
]
DEFAULT_DEPLOY_COMMAND = [
    "npx",
    "truffle",
    "migrate",
    "--reset",
    "--network",
    "development",
]
DEFAULT_SERVER_COMMAND = ["npm", "run", "start:server"]


@dataclass
class DevctlConfig:
    """Configuration class for the AgriChain launcher."""

    # Project layout
    project_dir: str = "."
    server_config_path: str = "server/index.js"
    contract_artifact_path: str = "build/contracts/AgriSupplyChain.json"

    # Blockchain network
    network_host: str = "127.0.0.1"
    network_port: int = 7545
    network_command: list[str] = field(
        default_factory=lambda: list(DEFAULT_NETWORK_COMMAND)
    )
    network_startup_timeout: float = 30
    network_settle_delay: float = 2.0

    # Contract deployment
    deploy_command: list[str] = field(
        default_factory=lambda: list(DEFAULT_DEPLOY_COMMAND)
    )
    deploy_timeout: float = 300

    # Data seeding
    actor_address: str = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
    call_gas: int = 3000000
    register_method: str = "addFarmer"
    record_method: str = "harvestItem"
    receipt_timeout: float = 120
    seed_data_path: str | None = None

    # Backend server
    server_host: str = "localhost"
    server_port: int = 5000
    server_command: list[str] = field(
        default_factory=lambda: list(DEFAULT_SERVER_COMMAND)
    )
    server_startup_timeout: float = 15
    server_settle_delay: float = 0.0

    # Logging settings
    log_level: str = "INFO"
    debug_mode: bool = False

    # Shutdown
    shutdown_timeout: float = 10

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        errors = []

        for name in ("network_port", "server_port"):
            port = getattr(self, name)
            if not isinstance(port, int) or not (1 <= port <= 65535):
                errors.append(
                    f"Invalid {name}: {port}. Must be between 1 and 65535."
                )

        for name in ("network_host", "server_host"):
            host = getattr(self, name)
            if not host or not isinstance(host, str):
                errors.append(f"{name} must be a non-empty string.")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if (
            not isinstance(self.log_level, str)
            or self.log_level.upper() not in valid_log_levels
        ):
            errors.append(
                f"Invalid log_level: {self.log_level}. Must be one of {valid_log_levels}."
            )

        for name in (
            "network_startup_timeout",
            "deploy_timeout",
            "receipt_timeout",
            "server_startup_timeout",
            "shutdown_timeout",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive.")

        for name in ("network_settle_delay", "server_settle_delay"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative.")

        if self.call_gas <= 0:
            errors.append("call_gas must be positive.")

        if not isinstance(self.actor_address, str) or not ADDRESS_PATTERN.match(
            self.actor_address
        ):
            errors.append(
                f"Invalid actor_address: {self.actor_address}. Must be a 0x-prefixed 40 hex digit address."
            )

        for name in ("network_command", "deploy_command", "server_command"):
            if not getattr(self, name):
                errors.append(f"{name} must not be empty.")

        if errors:
            raise InvalidConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )

    @property
    def network_url(self) -> str:
        return f"http://{self.network_host}:{self.network_port}"

    @property
    def server_url(self) -> str:
        return f"http://{self.server_host}:{self.server_port}"

    def resolve_path(self, path: str) -> Path:
        """Resolve a project-relative path against ``project_dir``."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return Path(self.project_dir) / candidate

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DevctlConfig":
        """Create configuration from dictionary."""
        # Filter out unknown keys
        known_keys = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in known_keys}
        return cls(**filtered_data)


class DevctlConfigManager:
    """Manager for launcher configuration with multiple sources."""

    DEFAULT_CONFIG_PATH = Path.home() / ".agrichain" / "devctl.json"

    ENV_MAPPING = {
        "AGRICHAIN_PROJECT_DIR": "project_dir",
        "AGRICHAIN_SERVER_CONFIG_PATH": "server_config_path",
        "AGRICHAIN_CONTRACT_ARTIFACT_PATH": "contract_artifact_path",
        "AGRICHAIN_NETWORK_HOST": "network_host",
        "AGRICHAIN_NETWORK_PORT": "network_port",
        "AGRICHAIN_NETWORK_STARTUP_TIMEOUT": "network_startup_timeout",
        "AGRICHAIN_NETWORK_SETTLE_DELAY": "network_settle_delay",
        "AGRICHAIN_DEPLOY_TIMEOUT": "deploy_timeout",
        "AGRICHAIN_ACTOR_ADDRESS": "actor_address",
        "AGRICHAIN_CALL_GAS": "call_gas",
        "AGRICHAIN_RECEIPT_TIMEOUT": "receipt_timeout",
        "AGRICHAIN_SEED_DATA_PATH": "seed_data_path",
        "AGRICHAIN_SERVER_HOST": "server_host",
        "AGRICHAIN_SERVER_PORT": "server_port",
        "AGRICHAIN_SERVER_STARTUP_TIMEOUT": "server_startup_timeout",
        "AGRICHAIN_SERVER_SETTLE_DELAY": "server_settle_delay",
        "AGRICHAIN_LOG_LEVEL": "log_level",
        "AGRICHAIN_DEBUG_MODE": "debug_mode",
        "AGRICHAIN_SHUTDOWN_TIMEOUT": "shutdown_timeout",
    }

    INT_KEYS = {"network_port", "server_port", "call_gas"}
    FLOAT_KEYS = {
        "network_startup_timeout",
        "network_settle_delay",
        "deploy_timeout",
        "receipt_timeout",
        "server_startup_timeout",
        "server_settle_delay",
        "shutdown_timeout",
    }
    BOOL_KEYS = {"debug_mode"}

    # Maps argparse destinations to configuration fields
    ARG_MAPPING = {
        "project_dir": "project_dir",
        "network_port": "network_port",
        "server_port": "server_port",
        "seed_data": "seed_data_path",
        "log_level": "log_level",
        "debug": "debug_mode",
    }

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: DevctlConfig | None = None

    def load_config(
        self,
        override_args: dict[str, Any] | None = None,
        create_default: bool = False,
    ) -> DevctlConfig:
        """Load configuration from multiple sources with precedence:
        1. Command-line arguments (highest priority)
        2. Configuration file
        3. Environment variables
        4. Defaults (lowest priority)
        """
        data: dict[str, Any] = {}
        data.update(self._load_from_environment())
        data.update(self._load_from_file())
        if override_args:
            data.update(self._convert_cli_args(override_args))

        config = DevctlConfig.from_dict(data)

        # The network command carries its own --port; keep it in step with network_port
        config.network_command = _with_port(config.network_command, config.network_port)

        if create_default and not self.config_path.exists():
            self.save_config(config)

        self._config = config
        return config

    def save_config(self, config: DevctlConfig) -> None:
        """Save configuration to file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, sort_keys=True)

        except OSError as e:
            raise ConfigurationError(
                f"Failed to save configuration to {self.config_path}: {e}"
            )

    def _load_from_file(self) -> dict[str, Any]:
        """Load configuration values from the JSON file."""
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfigurationError(
                f"Invalid JSON in config file {self.config_path}: {e}"
            )
        except OSError as e:
            raise ConfigurationError(
                f"Failed to load config file {self.config_path}: {e}"
            )

        if not isinstance(data, dict):
            raise InvalidConfigurationError(
                f"Config file {self.config_path} must contain a JSON object"
            )
        return data

    def _load_from_environment(self) -> dict[str, Any]:
        """Load configuration values from environment variables."""
        config_data = {}

        for env_var, config_key in self.ENV_MAPPING.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            converted = convert_config_value(config_key, value)
            if converted is None:
                raise InvalidConfigurationError(
                    f"Invalid value for {env_var}: {value}"
                )
            config_data[config_key] = converted

        return config_data

    def _convert_cli_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """Convert command-line arguments to configuration format."""
        config_data = {}

        for arg_name, config_key in self.ARG_MAPPING.items():
            if args.get(arg_name) is not None:
                config_data[config_key] = args[arg_name]

        return config_data

    def get_config(self) -> DevctlConfig:
        """Get the current configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def reset_to_defaults(self) -> DevctlConfig:
        """Reset configuration to defaults."""
        self._config = DevctlConfig()
        return self._config

    def show_config(self, format: str = "yaml") -> str:
        """Show current configuration in specified format."""
        config = self.get_config()

        if format.lower() == "json":
            return json.dumps(config.to_dict(), indent=2, sort_keys=True)
        elif format.lower() == "yaml":
            lines = []
            for key, value in sorted(config.to_dict().items()):
                if isinstance(value, list):
                    value = " ".join(value)
                lines.append(f"{key}: {value}")
            return "\n".join(lines)
        else:
            raise ValueError(f"Unsupported format: {format}")


def convert_config_value(key: str, value: str) -> Any:
    """Convert a string value to the type of configuration field ``key``.

    Returns None when the value cannot be converted.
    """
    try:
        if key in DevctlConfigManager.INT_KEYS:
            return int(value)
        if key in DevctlConfigManager.FLOAT_KEYS:
            return float(value)
        if key in DevctlConfigManager.BOOL_KEYS:
            return value.lower() in ("true", "1", "yes", "on")
        return value
    except ValueError:
        return None


def _with_port(command: list[str], port: int) -> list[str]:
    command = list(command)
    if "--port" in command:
        index = command.index("--port")
        if index + 1 < len(command):
            command[index + 1] = str(port)
    return command


__all__ = [
    "DevctlConfig",
    "DevctlConfigManager",
    "convert_config_value",
]
