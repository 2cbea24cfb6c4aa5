"""Utility functions and helpers for the Peteat client"""
from .path_config import (
    get_app_root,
    get_config_dir,
    get_logs_dir,
    get_data_dir,
    get_client_config_file,
    get_credentials_file
)
from .config_loader import ConfigManager, config
from .event_utils import EventType, DisconnectReason

__all__ = [
    'get_app_root',
    'get_config_dir',
    'get_logs_dir',
    'get_data_dir',
    'get_client_config_file',
    'get_credentials_file',
    'ConfigManager',
    'config',
    'EventType',
    'DisconnectReason'
]
