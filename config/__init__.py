"""Configuration management for the voting engine."""

from .config import (
    SystemConfig,
    CeremonyConfig,
    ElectionConfig,
    LedgerConfig,
    SessionConfig,
    load_config,
    save_config,
)

__all__ = [
    'SystemConfig',
    'CeremonyConfig',
    'ElectionConfig',
    'LedgerConfig',
    'SessionConfig',
    'load_config',
    'save_config',
]
