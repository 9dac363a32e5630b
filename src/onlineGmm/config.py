"""
Configuration for the online Gaussian mixture regressor.

Thresholds and rates live on a GMMConfig instance owned by each model, so
several independently tuned models can coexist in one process. Values are
read from the `gmm` section of config/online_gmm.yaml.
"""

import logging
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Optional

import yaml


@dataclass
class GMMConfig:
    max_clusters: int = 10
    num_labels: int = 8
    initial_variance: float = 2.0
    alpha: float = 0.05
    beta: float = 0.25
    min_cluster_score: float = 0.01
    min_total_mixture_probability: float = 1e-30
    max_distance: float = 1000.0
    max_mahalanobis_sq: float = 9.0
    max_mahalanobis_sq_for_update: float = 25.0
    max_error: float = 0.2
    max_cluster_lifetime: float = 30.0  # seconds
    valid_cluster_std_dev: float = 2.0

    @property
    def inv_initial_variance(self) -> float:
        return 1.0 / self.initial_variance

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "GMMConfig":
        """
        Build a config from a plain dict, e.g. the `gmm` section of the YAML file.

        Missing keys keep their defaults; unknown keys are rejected.
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown GMM config keys: {unknown}")

        config = cls(**data)
        config.validate()
        return config

    def validate(self) -> None:
        if self.max_clusters < 1:
            raise ValueError(f"max_clusters must be >= 1, got {self.max_clusters}")
        if self.num_labels < 1:
            raise ValueError(f"num_labels must be >= 1, got {self.num_labels}")
        if self.initial_variance <= 0:
            raise ValueError(f"initial_variance must be > 0, got {self.initial_variance}")
        if not 0 < self.alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {self.alpha}")

    def to_dict(self) -> Dict:
        return asdict(self)


def load_config(config_path: str = "config/online_gmm.yaml") -> dict:
    """Load the full YAML configuration (gmm, logging, stream sections)."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def load_gmm_config(config_path: str = "config/online_gmm.yaml") -> GMMConfig:
    """Load only the model thresholds."""
    return GMMConfig.from_dict(load_config(config_path).get('gmm'))


def setup_logging(config: dict) -> logging.Logger:
    """Setup logging configuration."""
    log_cfg = config.get('logging', {})
    log_level = getattr(logging, str(log_cfg.get('level', 'INFO')).upper())
    handlers = [logging.StreamHandler(sys.stdout)]

    log_file = log_cfg.get('log_file')
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=handlers,
    )

    return logging.getLogger(__name__)
