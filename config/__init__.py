"""Configuration directory for the Peteat client.

Settings are read by ``utils.config_loader.ConfigManager`` and merged over
its built-in defaults. Environment variables (PETEAT_API_URL, PETEAT_DEV_IP,
PETEAT_SOCKET_URL, PETEAT_LOG_LEVEL) are applied last.

Components:
- client_config.json: optional overrides for the api, realtime, chat and
  logging sections
"""
