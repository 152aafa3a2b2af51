"""Configuration management for the Echo stream client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


class Configuration:
    """Manages configuration and environment variables for the stream client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Configuration":
        """Build a configuration from an in-memory dictionary."""
        instance = cls.__new__(cls)
        cls.load_env()
        instance.config_path = None
        instance._config = config
        return instance

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_api_config(self) -> dict[str, Any]:
        """Get the Echo API endpoint configuration.

        Returns:
            Dictionary with ``base_url`` and ``stream_path``.

        Raises:
            ValueError: If a required key is missing or invalid.
        """
        api_config = self._config.get("api", {})

        for key in ("base_url", "stream_path"):
            if key not in api_config:
                raise ValueError(
                    f"api.{key} must be explicitly configured in config.yaml"
                )

        base_url = os.getenv("ECHO_API_URL") or api_config["base_url"]
        stream_path = api_config["stream_path"]

        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"api.base_url must be an http(s) URL, got '{base_url}'")
        if not stream_path.startswith("/"):
            raise ValueError("api.stream_path must start with '/'")

        return {"base_url": base_url.rstrip("/"), "stream_path": stream_path}

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self._config.get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"http_client.{key} must be explicitly configured in config.yaml"
                )
            if http_config[key] <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return {key: float(http_config[key]) for key in required_keys}

    def get_streaming_config(self) -> dict[str, Any]:
        """Get stream framing limits.

        Returns:
            Dictionary with ``max_line_size`` and ``chunk_size``.

        Raises:
            ValueError: If required streaming parameters are missing or invalid.
        """
        streaming_config = self._config.get("streaming", {})

        for key in ("max_line_size", "chunk_size"):
            if key not in streaming_config:
                raise ValueError(
                    f"streaming.{key} must be explicitly configured in config.yaml"
                )
            value = streaming_config[key]
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"streaming.{key} must be a positive integer")

        return {
            "max_line_size": streaming_config["max_line_size"],
            "chunk_size": streaming_config["chunk_size"],
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
