"""
Configuration Management

Handles loading configuration from environment variables (and a .env file).
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = 'PEERDROP_'


@dataclass
class Config:
    """
    peerdrop configuration.

    Configuration priority (highest to lowest):
    1. Command-line options
    2. Environment variables (PEERDROP_*), including a .env file
    3. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = 9000

    # Storage
    output_dir: Path = field(default_factory=lambda: Path('./received_data'))

    # Performance
    buffer_size: int = 32 * 1024  # 32KB copy buffer
    max_sessions: int = 0  # 0 = no limit

    # Timeouts (seconds)
    connect_timeout: Optional[float] = 10.0

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv(dotenv_path)

        config = cls()

        # Network
        config.host = os.getenv(ENV_PREFIX + 'HOST', config.host)
        config.port = _env_int('PORT', config.port)

        # Storage
        output_dir = os.getenv(ENV_PREFIX + 'OUTPUT_DIR')
        if output_dir:
            config.output_dir = Path(output_dir)

        # Performance
        config.buffer_size = _env_int('BUFFER_SIZE', config.buffer_size)
        config.max_sessions = _env_int('MAX_SESSIONS', config.max_sessions)

        # Timeouts
        timeout = os.getenv(ENV_PREFIX + 'CONNECT_TIMEOUT')
        if timeout is not None:
            if timeout.strip().lower() in ('', 'none', '0'):
                config.connect_timeout = None
            else:
                try:
                    config.connect_timeout = float(timeout)
                except ValueError:
                    raise ValueError(
                        f"{ENV_PREFIX}CONNECT_TIMEOUT must be a number, got {timeout!r}"
                    )

        # Logging
        config.log_level = os.getenv(ENV_PREFIX + 'LOG_LEVEL', config.log_level).upper()

        return config

    def validate(self) -> 'Config':
        """Check value ranges; returns self for chaining."""
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")
        if self.max_sessions < 0:
            raise ValueError(f"max_sessions must be >= 0, got {self.max_sessions}")
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {self.connect_timeout}")
        return self

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'output_dir': str(self.output_dir),
            'buffer_size': self.buffer_size,
            'max_sessions': self.max_sessions,
            'connect_timeout': self.connect_timeout,
            'log_level': self.log_level,
        }


def _env_int(name: str, default: int) -> int:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}")


def load_config(dotenv_path: Optional[Path] = None, **overrides) -> Config:
    """
    Load configuration from the environment, then apply overrides.

    Overrides set to None are ignored, so CLI options that were not
    given fall through to the environment.
    """
    config = Config.from_env(dotenv_path)

    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise TypeError(f"Unknown config option: {key}")
        if key == 'output_dir':
            value = Path(value)
        setattr(config, key, value)

    return config.validate()
