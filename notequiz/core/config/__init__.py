"""
Configuration layer.

- `config.Config`: static, environment-driven settings (python-dotenv).
- `manager.ConfigManager`: YAML-backed tunables with dot-notation access.

`ConfigManager` is imported from its module directly; it depends on the
logging subsystem, which itself reads `Config`.
"""

from notequiz.core.config.config import Config, Environment, LockBackend

__all__ = ["Config", "Environment", "LockBackend"]
