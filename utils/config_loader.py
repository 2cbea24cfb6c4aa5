#!/usr/bin/env python3
"""Configuration loader for the Peteat client.

This module provides a centralized configuration management system for the
REST client, the realtime connection manager and the chat consumers. It
handles loading and merging configuration from multiple sources, with
support for default values and runtime updates.

Key Features:
- Hierarchical configuration management
- Default configuration values
- JSON file-based configuration
- Environment variable overrides (.env files are honoured)
- Deep merging of configuration updates
- Configuration validation
"""
import os
import json
import logging
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv
from .path_config import get_config_dir

logger = logging.getLogger(__name__)

DEFAULT_DEV_IP = "192.168.68.112"
API_PORT = 5000

def build_fallback_urls(env_url: Optional[str], dev_ip: Optional[str]) -> List[str]:
    """Ordered list of API base URLs to probe when the active host is unreachable."""
    urls = []
    if env_url:
        urls.append(env_url)
    urls.extend([
        f"http://{dev_ip or DEFAULT_DEV_IP}:{API_PORT}/api",
        f"http://10.0.2.2:{API_PORT}/api",
        f"http://localhost:{API_PORT}/api",
        f"http://127.0.0.1:{API_PORT}/api",
    ])
    unique = []
    for url in urls:
        if url not in unique:
            unique.append(url)
    return unique

def socket_url_from_api(base_url: str) -> str:
    """The realtime server lives on the API host without the /api suffix."""
    base_url = base_url.rstrip("/")
    if base_url.endswith("/api"):
        return base_url[: -len("/api")]
    return base_url

class ConfigManager:
    CONFIG_FILES = ["client_config.json"]

    def __init__(self, config_dir: Optional[str] = None, use_env: bool = True):
        """Initialize the configuration manager."""
        self._config_dir = config_dir
        self._config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_config_files()
        if use_env:
            self._load_environment()
        self._derive_urls()
        self._validate_config(self._config)

    def _load_defaults(self) -> None:
        """Load default configuration values."""
        self._config = {
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "file": "peteat_client.log",
                "console": False
            },
            "api": {
                "base_url": None,
                "dev_ip": DEFAULT_DEV_IP,
                "fallback_urls": None,
                "timeout": 15.0,
                "probe_timeout": 2.0,
                "health_path": "/health"
            },
            "realtime": {
                "url": None,
                "transports": ["websocket", "polling"],
                "max_reconnect_attempts": 5,
                "reconnect_base_delay": 1.0,
                "reconnect_jitter": 0.0,
                "connect_timeout": 5.0,
                "handshake_timeout": 10.0
            },
            "chat": {
                "dedupe_window": 10.0
            }
        }

    def _load_config_files(self) -> None:
        """Load configuration from JSON files in the config directory."""
        config_dir = self._config_dir or get_config_dir()
        for filename in self.CONFIG_FILES:
            filepath = os.path.join(config_dir, filename)
            try:
                if os.path.exists(filepath):
                    with open(filepath, 'r') as f:
                        file_config = json.load(f)
                        # Merge configuration recursively
                        self._merge_config(self._config, file_config)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading config file {filename}: {e}")

    def _load_environment(self) -> None:
        """Apply PETEAT_* environment overrides."""
        load_dotenv()
        env_url = os.getenv("PETEAT_API_URL")
        dev_ip = os.getenv("PETEAT_DEV_IP")
        if dev_ip:
            self._config["api"]["dev_ip"] = dev_ip
        if env_url:
            self._config["api"]["base_url"] = env_url
            self._config["api"]["env_url"] = env_url
        socket_url = os.getenv("PETEAT_SOCKET_URL")
        if socket_url:
            self._config["realtime"]["url"] = socket_url
        log_level = os.getenv("PETEAT_LOG_LEVEL")
        if log_level:
            self._config["logging"]["level"] = log_level.upper()

    def _derive_urls(self) -> None:
        """Fill in URLs that default to values computed from other settings."""
        api = self._config["api"]
        if not api.get("base_url"):
            api["base_url"] = f"http://localhost:{API_PORT}/api"
        if api.get("fallback_urls") is None:
            api["fallback_urls"] = build_fallback_urls(api.get("env_url"), api.get("dev_ip"))
        realtime = self._config["realtime"]
        if not realtime.get("url"):
            realtime["url"] = socket_url_from_api(api["base_url"])

    def _merge_config(self, base: Dict, update: Dict) -> None:
        """
        Recursively merge two configuration dictionaries.
        Args:
            base: Base configuration dictionary
            update: Dictionary with updates to merge
        """
        for key, value in update.items():
            if (
                key in base and
                isinstance(base[key], dict) and
                isinstance(value, dict)
            ):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate the merged configuration."""
        self._validate_api_config(config.get("api", {}))
        self._validate_realtime_config(config.get("realtime", {}))
        if config.get("chat", {}).get("dedupe_window", 0) < 0:
            raise ValueError("Chat dedupe window must not be negative")

    def _validate_api_config(self, config: Dict[str, Any]) -> None:
        """Validate REST client configuration"""
        for key in ("timeout", "probe_timeout"):
            if not isinstance(config.get(key), (int, float)) or config[key] <= 0:
                raise ValueError(f"api.{key} must be a positive number of seconds")
        if not isinstance(config.get("fallback_urls"), list):
            raise ValueError("api.fallback_urls must be a list of URLs")

    def _validate_realtime_config(self, config: Dict[str, Any]) -> None:
        """Validate realtime connection configuration"""
        attempts = config.get("max_reconnect_attempts")
        if not isinstance(attempts, int) or attempts < 0:
            raise ValueError("realtime.max_reconnect_attempts must be a non-negative integer")
        for key in ("reconnect_base_delay", "connect_timeout", "handshake_timeout"):
            if not isinstance(config.get(key), (int, float)) or config[key] <= 0:
                raise ValueError(f"realtime.{key} must be a positive number of seconds")
        if not (0.0 <= config.get("reconnect_jitter", 0.0) < 1.0):
            raise ValueError("realtime.reconnect_jitter must be within [0, 1)")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found
        Returns:
            Configuration value or default
        """
        try:
            return self._config[section][key]
        except KeyError:
            return default

    def set(self, section: str, key: str, value: Any) -> None:
        """
        Set a configuration value.
        Args:
            section: Configuration section
            key: Configuration key
            value: Value to set
        """
        if section not in self._config:
            self._config[section] = {}
        self._config[section][key] = value

    def save(self, filename: str = "client_config.json") -> bool:
        """
        Save current configuration to a file.
        Args:
            filename: Name of the file to save to
        Returns:
            bool: True if save was successful, False otherwise
        """
        try:
            filepath = os.path.join(self._config_dir or get_config_dir(), filename)
            os.makedirs(os.path.dirname(filepath), exist_ok=True)

            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
            return True
        except OSError as e:
            logger.error(f"Error saving config to {filename}: {e}")
            return False

    @property
    def config(self) -> Dict[str, Any]:
        """Get the complete configuration dictionary."""
        return self._config.copy()

# Create a global configuration instance
config = ConfigManager()
