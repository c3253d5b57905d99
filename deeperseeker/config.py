"""Configuration management for the DeeperSeeker client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key(self) -> str | None:
        """Get the API key for the backend from the environment.

        Returns:
            The API key, or None when the variable is unset or empty. Callers
            fall back to the key-value store in that case.
        """
        env_key = self._config.get("llm", {}).get("api_key_env", "PERPLEXITY_API_KEY")
        return os.getenv(env_key) or None

    def get_llm_config(self) -> dict[str, Any]:
        """Get backend configuration from YAML.

        Returns:
            Dictionary with provider, base_url, model and max_tokens.

        Raises:
            ValueError: If a required key is missing or invalid.
        """
        llm_config = self._config.get("llm", {})

        required_keys = ["provider", "base_url", "model", "max_tokens"]
        for key in required_keys:
            if key not in llm_config:
                raise ValueError(
                    f"llm.{key} must be explicitly configured in config.yaml"
                )

        max_tokens = llm_config["max_tokens"]
        if not isinstance(max_tokens, int) or max_tokens < 1:
            raise ValueError("llm.max_tokens must be a positive integer")
        if not llm_config["model"]:
            raise ValueError("llm.model must not be empty")

        return {
            "provider": llm_config["provider"],
            "base_url": llm_config["base_url"].rstrip("/"),
            "model": llm_config["model"],
            "max_tokens": max_tokens,
        }

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self._config.get("llm", {}).get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"llm.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )
            value = http_config[key]
            if not isinstance(value, int | float) or value <= 0:
                raise ValueError(f"llm.http_client.{key} must be positive")

        return {key: float(http_config[key]) for key in required_keys}

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration from YAML."""
        streaming_config = self._config.get("streaming", {})
        return {
            "log_malformed_frames": bool(
                streaming_config.get("log_malformed_frames", True)
            ),
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        logging_config = self._config.get("logging", {})
        return {
            "level": str(logging_config.get("level", "INFO")),
            "json": bool(logging_config.get("json", False)),
        }

    def get_storage_config(self) -> dict[str, Any]:
        """Get key-value storage configuration from YAML.

        Raises:
            ValueError: If storage.path is not configured.
        """
        storage_config = self._config.get("storage", {})
        if not storage_config.get("path"):
            raise ValueError(
                "storage.path must be explicitly configured in config.yaml"
            )
        return {"path": os.path.expanduser(storage_config["path"])}
