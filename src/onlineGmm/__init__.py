"""
Online Gaussian mixture regression over (density, thresh) -> output streams.

This module implements a fixed-capacity mixture of 2-D Gaussian clusters
that is fitted one observation at a time, each cluster doubling as a local
linear regressor from input to output.
"""

from .cluster import GaussianMixtureCluster, LabelHistogram, Observation
from .config import GMMConfig, load_config, load_gmm_config, setup_logging
from .model import GaussianMixtureModel
from .data import load_observations, generate_synthetic_stream, iter_observations
from .evaluate import run_stream, compute_metrics, make_plots

__all__ = [
    "GaussianMixtureCluster",
    "LabelHistogram",
    "Observation",
    "GMMConfig",
    "load_config",
    "load_gmm_config",
    "setup_logging",
    "GaussianMixtureModel",
    "load_observations",
    "generate_synthetic_stream",
    "iter_observations",
    "run_stream",
    "compute_metrics",
    "make_plots",
]
