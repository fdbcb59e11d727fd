"""
Configuration management for carecord.

- **app_configuration.py**: YAML configuration loader for global settings.
  Exposes safety tuning (timeouts, behavior cache size, system actor, mute
  duration, support message templates) and classifier settings. Falls back
  gracefully on missing or malformed config files.
"""
