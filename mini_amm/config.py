"""
Configuration management for pool services.
"""
import json
import logging
import os
from dataclasses import dataclass, asdict, field


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    serve: bool = False  # Expose metrics over HTTP
    host: str = "127.0.0.1"
    port: int = 9090
    namespace: str = "mini_amm"


@dataclass
class Config:
    """Main configuration."""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            logging=LoggingConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            logging=LoggingConfig(**data.get('logging', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'logging': asdict(self.logging),
            'monitoring': asdict(self.monitoring)
        }


def configure_logging(config: LoggingConfig):
    """Apply the logging section to the root logger."""
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.level}")
    logging.basicConfig(level=level, format=config.format)
    logging.getLogger('mini_amm').setLevel(level)
