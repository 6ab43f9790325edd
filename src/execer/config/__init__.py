"""Configuration loading for execer."""

from ._loader import deep_merge, parse_env_vars, read_toml_file, set_nested_key
from ._models import Config, ExecerSettings, LogFormat, LoggingConfig, LogLevel

__all__ = [
    "Config",
    "ExecerSettings",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "deep_merge",
    "parse_env_vars",
    "read_toml_file",
    "set_nested_key",
]
