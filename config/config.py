import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ballot.elgamal import MAX_OPTIONS_COUNT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


@dataclass
class CeremonyConfig:
    num_key_holders: int = 3
    threshold: int = 2
    output_dir: Path = field(default_factory=lambda: Path("keys"))

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        if not 1 <= self.threshold <= self.num_key_holders:
            raise ValueError(
                f"Ceremony threshold must satisfy 1 <= t <= m, got t={self.threshold}, "
                f"m={self.num_key_holders}")


@dataclass
class ElectionConfig:
    title: str = "Demo election"
    options_count: int = 2
    voting_duration: int = 3600
    num_distributors: int = 1
    distributor_threshold: int = 1

    def __post_init__(self):
        if not 2 <= self.options_count <= MAX_OPTIONS_COUNT:
            raise ValueError(f"options_count must be in [2, {MAX_OPTIONS_COUNT}]")
        if self.voting_duration <= 0:
            raise ValueError("voting_duration must be positive")
        if not 1 <= self.distributor_threshold <= self.num_distributors:
            raise ValueError("distributor_threshold must be in 1..num_distributors")


@dataclass
class LedgerConfig:
    url: Optional[str] = None
    timeout: float = 10.0
    max_retries: int = 3
    retry_backoff: float = 0.5
    failure_threshold: int = 5
    recovery_timeout: float = 60.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")


@dataclass
class SessionConfig:
    ttl_seconds: float = 300.0

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ValueError("Session ttl_seconds must be positive")


@dataclass
class SystemConfig:
    ceremony: CeremonyConfig = field(default_factory=CeremonyConfig)
    election: ElectionConfig = field(default_factory=ElectionConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    log_level: str = "INFO"
    enable_benchmarking: bool = True

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.results_dir.mkdir(parents=True, exist_ok=True)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return value


def config_from_dict(config_data: Dict[str, Any]) -> SystemConfig:
    ceremony_data = _section(config_data, 'ceremony')
    election_data = _section(config_data, 'election')
    ledger_data = _section(config_data, 'ledger')
    session_data = _section(config_data, 'sessions')

    return SystemConfig(
        ceremony=CeremonyConfig(
            num_key_holders=ceremony_data.get('num_key_holders', 3),
            threshold=ceremony_data.get('threshold', 2),
            output_dir=Path(ceremony_data.get('output_dir', 'keys')),
        ),
        election=ElectionConfig(
            title=election_data.get('title', 'Demo election'),
            options_count=election_data.get('options_count', 2),
            voting_duration=election_data.get('voting_duration', 3600),
            num_distributors=election_data.get('num_distributors', 1),
            distributor_threshold=election_data.get('distributor_threshold', 1),
        ),
        ledger=LedgerConfig(
            url=ledger_data.get('url'),
            timeout=ledger_data.get('timeout', 10.0),
            max_retries=ledger_data.get('max_retries', 3),
            retry_backoff=ledger_data.get('retry_backoff', 0.5),
            failure_threshold=ledger_data.get('failure_threshold', 5),
            recovery_timeout=ledger_data.get('recovery_timeout', 60.0),
        ),
        sessions=SessionConfig(ttl_seconds=session_data.get('ttl_seconds', 300.0)),
        log_dir=Path(config_data.get('log_dir', 'logs')),
        results_dir=Path(config_data.get('results_dir', 'results')),
        log_level=config_data.get('log_level', 'INFO'),
        enable_benchmarking=config_data.get('enable_benchmarking', True),
    )


def config_to_dict(config: SystemConfig) -> Dict[str, Any]:
    return {
        'ceremony': {
            'num_key_holders': config.ceremony.num_key_holders,
            'threshold': config.ceremony.threshold,
            'output_dir': str(config.ceremony.output_dir),
        },
        'election': {
            'title': config.election.title,
            'options_count': config.election.options_count,
            'voting_duration': config.election.voting_duration,
            'num_distributors': config.election.num_distributors,
            'distributor_threshold': config.election.distributor_threshold,
        },
        'ledger': {
            'url': config.ledger.url,
            'timeout': config.ledger.timeout,
            'max_retries': config.ledger.max_retries,
            'retry_backoff': config.ledger.retry_backoff,
            'failure_threshold': config.ledger.failure_threshold,
            'recovery_timeout': config.ledger.recovery_timeout,
        },
        'sessions': {
            'ttl_seconds': config.sessions.ttl_seconds,
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'log_level': config.log_level,
        'enable_benchmarking': config.enable_benchmarking,
    }


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            if not isinstance(config_data, dict):
                raise ValueError("top level must be a mapping")
            return config_from_dict(config_data)
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.warning(f"Could not load config file {config_path}: {e}")
            logger.warning("Using default configuration")

    return SystemConfig()


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    with open(config_path, 'w') as f:
        yaml.safe_dump(config_to_dict(config), f, default_flow_style=False)
