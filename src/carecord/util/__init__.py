"""
Utility functions and helpers for carecord.

- **logger.py**: Centralized logging configuration with colored console output,
  a per-session log file, and suppression of noisy library loggers. Uses
  prompt_toolkit for console output.

- **discord_utils.py**: Stateless Discord helpers such as privilege checks and
  message previews.
"""
