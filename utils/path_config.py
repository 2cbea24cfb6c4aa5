"""Path configuration utilities for the Peteat client.

This module provides centralized path management for configuration, logs and
the local credential store. Directories are created on first use.

Key Features:
- Application root path resolution (overridable with PETEAT_HOME)
- Automatic directory creation
- Configuration and credential file path resolution
"""
import os
from pathlib import Path

def get_app_root():
    """Get the root directory of the application."""
    override = os.getenv("PETEAT_HOME")
    if override:
        return str(Path(override).expanduser().absolute())
    return str(Path(__file__).parent.parent.absolute())

def get_config_dir():
    """Get the configuration directory path."""
    config_dir = os.path.join(get_app_root(), "config")
    os.makedirs(config_dir, exist_ok=True)
    return config_dir

def get_logs_dir():
    """Get the logs directory path."""
    logs_dir = os.path.join(get_app_root(), "logs")
    os.makedirs(logs_dir, exist_ok=True)
    return logs_dir

def get_data_dir():
    """Get the directory holding device-local state (tokens, cached user)."""
    data_dir = os.path.join(get_app_root(), ".data")
    os.makedirs(data_dir, exist_ok=True)
    return data_dir

def get_client_config_file():
    """Get the client configuration file path."""
    return os.path.join(get_config_dir(), "client_config.json")

def get_credentials_file():
    """Get the credential store file path."""
    return os.path.join(get_data_dir(), "credentials.json")
