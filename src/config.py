"""Configuration management for the chat relay and stream consumer."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv


class Configuration:
    """Manages configuration and environment variables for relay and client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self._config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()  # Load YAML config

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key(self) -> str | None:
        """Get the upstream provider API key.

        The key is read from the environment on every access so that a
        rotated key is picked up by the next request. A missing key is not
        an error here: the upstream rejects the request instead.

        Returns:
            The API key, or None when the variable is unset.
        """
        env_key = self.get_relay_config()["api_key_env"]
        return os.getenv(env_key)

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary.

        Returns:
            The complete configuration dictionary.
        """
        return self._config

    def get_relay_config(self) -> dict[str, Any]:
        """Get relay (upstream forwarding) configuration from YAML.

        Returns:
            Relay configuration dictionary.

        Raises:
            ValueError: If required relay parameters are missing or invalid.
        """
        relay_config = self._config.get("relay", {})

        required_keys = [
            "base_url", "completions_path", "model", "route", "api_key_env"
        ]
        for key in required_keys:
            if key not in relay_config:
                raise ValueError(
                    f"relay.{key} must be explicitly configured in config.yaml"
                )

        if not str(relay_config["route"]).startswith("/"):
            raise ValueError("relay.route must start with '/'")

        return relay_config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration for the upstream connection.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self.get_relay_config().get("http_client", {})

        required_keys = [
            "max_connections", "max_keepalive", "keepalive_expiry",
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout",
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"relay.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )

        max_conn = http_config["max_connections"]
        max_keepalive = http_config["max_keepalive"]

        if max_conn < 1:
            raise ValueError("relay.http_client.max_connections must be at least 1")
        if max_keepalive > max_conn:
            raise ValueError(
                "relay.http_client.max_keepalive must be <= max_connections"
            )
        read_timeout = http_config["read_timeout"]
        if read_timeout is not None and read_timeout <= 0:
            raise ValueError(
                "relay.http_client.read_timeout must be positive or null"
            )

        return http_config

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration from YAML.

        Returns:
            Server configuration dictionary.

        Raises:
            ValueError: If host or port is missing or the port is out of range.
        """
        server_config = self._config.get("server", {})

        for key in ("host", "port"):
            if key not in server_config:
                raise ValueError(
                    f"server.{key} must be explicitly configured in config.yaml"
                )

        port = server_config["port"]
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ValueError("server.port must be an integer between 1 and 65535")

        return {"log_level": "info", **server_config}

    def get_client_config(self) -> dict[str, Any]:
        """Get stream consumer configuration from YAML.

        Returns:
            Client configuration dictionary.

        Raises:
            ValueError: If relay_url is missing or a timeout is invalid.
        """
        client_config = self._config.get("client", {})

        if "relay_url" not in client_config:
            raise ValueError(
                "client.relay_url must be explicitly configured in config.yaml"
            )

        for key in ("connect_timeout", "read_timeout"):
            value = client_config.get(key)
            if value is not None and value <= 0:
                raise ValueError(f"client.{key} must be positive or null")

        return {
            "system_prompt": None,
            "connect_timeout": None,
            "read_timeout": None,
            **client_config,
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
