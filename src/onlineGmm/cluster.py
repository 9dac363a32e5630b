"""
A single component of the online Gaussian mixture.

Each cluster is a 2-D Gaussian over the input space (density, thresh) plus
a local linear regressor to the 2-D output space. Input covariance and
input/output cross-covariance are running estimates updated one
observation at a time:

    dx     = w * (x - mean_in),  dy = w * (y - mean_out)
    mean  += dx  (and dy)
    cov   += w * (dx (x) dx - cov)
    cross += w * (dx (x) dy - cross)

with w = alpha * responsibility. Predictions use the conditional Gaussian
mean  y = mean_out + cross^T . inv(cov) . (x - mean_in).
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from . import matvec
from .clock import is_timed_out
from .clock import timestamp as default_clock
from .config import GMMConfig
from .matvec import Gaussian2D


@dataclass
class Observation:
    label: int
    density: float
    thresh: float

    @property
    def vector(self) -> np.ndarray:
        return matvec.vec2(self.density, self.thresh)

    def is_valid(self, num_labels: int) -> bool:
        """Integral label in range and both inputs finite."""
        try:
            label_ok = int(self.label) == self.label and 0 <= int(self.label) < num_labels
            return label_ok and math.isfinite(float(self.density)) and math.isfinite(float(self.thresh))
        except (TypeError, ValueError, OverflowError):
            return False


class LabelHistogram:
    """Fixed-capacity label counts with normalized running averages."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.average = np.zeros(capacity)
        self.count = np.zeros(capacity, dtype=np.int64)
        self.num_valid = 0

    def reset(self) -> None:
        self.average[:] = 0.0
        self.count[:] = 0
        self.num_valid = 0

    def seed(self, label: int) -> None:
        self.reset()
        if not 0 <= label < self.capacity:
            return
        self.average[label] = 1.0
        self.count[label] = 1
        self.num_valid = label + 1

    def report(self, label: int) -> None:
        if not 0 <= label < self.capacity:
            return
        self.count[label] += 1
        self.num_valid = max(self.num_valid, label + 1)
        valid = slice(0, self.num_valid)
        self.average[valid] = self.count[valid] / self.count[valid].sum()


class GaussianMixtureCluster:
    """One Gaussian component: density estimate over inputs, linear map to outputs."""

    def __init__(
        self,
        config: Optional[GMMConfig] = None,
        clock: Callable[[], float] = default_clock,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or GMMConfig()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self.gaussian_in = Gaussian2D()
        self.gaussian_out = Gaussian2D()
        self.llt_in = matvec.mat2x2()
        self.inv_covariance_in = matvec.mat2x2()
        self.log_gaussian_norm_factor = math.nan

        self.score = 0.0
        self.mahalanobis_sq = 0.0
        self.probability_of_in = 0.0
        self.probability_condition_input = 0.0

        self.labels = LabelHistogram(self.config.num_labels)
        self.primary_id = 0.0
        self.secondary_id = 0.0
        self.weight = 0.0

        self.min_y = 0.0
        self.max_y = 0.0
        self.timestamp = 0.0

    def initialize(self, observation: Optional[Observation], output: np.ndarray) -> None:
        if observation is None:
            return
        self.logger.debug("Initializing cluster %x", id(self))
        cfg = self.config

        self.gaussian_in.mean = observation.vector
        self.gaussian_out.mean = np.asarray(output, dtype=np.float64).copy()
        self.gaussian_out.covariance = matvec.mat2x2()
        self.gaussian_in.covariance = matvec.mat2x2(cfg.initial_variance, 0.0, 0.0, cfg.initial_variance)
        self.inv_covariance_in = matvec.mat2x2(cfg.inv_initial_variance, 0.0, 0.0, cfg.inv_initial_variance)
        self.score = 1.0

        self.mahalanobis_sq = 0.0
        self.probability_of_in = 0.0
        self.probability_condition_input = 0.0
        self.primary_id = 0.0
        self.secondary_id = 0.0
        self.weight = 0.0

        self.labels.seed(int(observation.label))

        self.llt_in = matvec.llt(self.gaussian_in.covariance)
        self.update_normal()
        self.update_limits()
        self.timestamp = self.clock()

    def update(self, observation: Observation, output: np.ndarray) -> None:
        cfg = self.config
        self.logger.debug("Log gaussian norm factor: %.2f", self.log_gaussian_norm_factor)
        if not math.isfinite(self.log_gaussian_norm_factor):
            return
        self.logger.debug("Mahalanobis sq: %.2f", self.mahalanobis_sq)
        if self.mahalanobis_sq > cfg.max_mahalanobis_sq_for_update:
            return

        score_weight = cfg.alpha * matvec.safe_exp(-cfg.beta * self.mahalanobis_sq)
        self.score += score_weight * (self.probability_condition_input - self.score)

        weight = cfg.alpha * self.probability_condition_input

        delta_in = matvec.weighted_mean_update(observation.vector, self.gaussian_in, weight)
        delta_out = matvec.weighted_mean_update(
            np.asarray(output, dtype=np.float64), self.gaussian_out, weight
        )
        self.logger.debug("Gaussian mean in: [%.2f %.2f]", *self.gaussian_in.mean)

        matvec.weighted_covariance_update(delta_in, delta_in, self.gaussian_in, weight)
        matvec.weighted_covariance_update(delta_in, delta_out, self.gaussian_out, weight)

        self.llt_in = matvec.llt(self.gaussian_in.covariance)
        self.inv_covariance_in = matvec.inverse(self.gaussian_in.covariance)

        self.update_normal()
        self.update_limits()

        self.labels.report(int(observation.label))

        self.timestamp = self.clock()

    def get_score(self, input_vec: np.ndarray) -> float:
        """Store and return the density of input_vec under this cluster."""
        cfg = self.config
        input_delta = matvec.subtract(input_vec, self.gaussian_in.mean)
        distance = matvec.mahalanobis_sq(self.inv_covariance_in, input_delta)
        # NaN distance (degenerate inverse) saturates like a far-away input
        self.mahalanobis_sq = min(distance, cfg.max_distance) if not math.isnan(distance) else cfg.max_distance
        self.probability_of_in = matvec.safe_exp(self.log_gaussian_norm_factor - 0.5 * self.mahalanobis_sq)
        return self.probability_of_in

    def update_normal(self) -> None:
        with np.errstate(invalid="ignore", divide="ignore"):
            scale = 2 * math.pi * np.sqrt(self.llt_in[0, 0]) * np.sqrt(self.llt_in[1, 1])
            norm_factor = -np.log(scale)
        self.log_gaussian_norm_factor = float(norm_factor)

    def update_input_probability(self, total_probability: float) -> None:
        if total_probability > self.config.min_total_mixture_probability:
            self.probability_condition_input = matvec.zdiv(self.probability_of_in, total_probability)
        else:
            self.probability_condition_input = 0.0

    def predict(self, input_vec: np.ndarray) -> np.ndarray:
        """Conditional mean of the output given input_vec under this cluster alone."""
        input_delta = matvec.subtract(input_vec, self.gaussian_in.mean)
        inv_covariance_delta = matvec.dot_vec2(self.inv_covariance_in, input_delta)
        cov_out_t = matvec.transpose(self.gaussian_out.covariance)
        input_covariance = matvec.dot_vec2(cov_out_t, inv_covariance_delta)
        return matvec.add(self.gaussian_out.mean, input_covariance)

    def contribute_to_output(self, input_vec: np.ndarray, output: np.ndarray) -> None:
        """Add this cluster's responsibility-weighted prediction into output (in place)."""
        output += matvec.scale(self.probability_condition_input, self.predict(input_vec))

    def update_limits(self) -> None:
        radius_y = self.gaussian_in.covariance[1, 1] * self.config.valid_cluster_std_dev
        self.max_y = self.gaussian_in.mean[1] + radius_y
        self.min_y = self.gaussian_in.mean[1] - radius_y

    def weigh(self) -> None:
        # Best two label contributions
        average = self.labels.average
        first, second = average[0], 0.0
        for i in range(1, self.labels.num_valid):
            check = average[i]
            if check > first:
                second = first
                first = check
            elif check > second:
                second = check

        cov = self.gaussian_in.covariance
        eccentricity_factor = matvec.zdiv(cov[0, 1] * cov[1, 0], cov[0, 0] * cov[1, 1])
        self.weight = float((first + second) * eccentricity_factor)
        self.primary_id = float(first)
        self.secondary_id = float(second)

    def is_alive(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = self.clock()
        return not (
            self.score < self.config.min_cluster_score
            or is_timed_out(self.timestamp, self.config.max_cluster_lifetime, now)
            or not math.isfinite(self.log_gaussian_norm_factor)
        )

    def __repr__(self) -> str:
        cov = self.gaussian_in.covariance
        return (
            f"GaussianMixtureCluster(mean=<{self.gaussian_in.mean[0]:.3f}, {self.gaussian_in.mean[1]:.3f}>, "
            f"cov=[{cov[0, 0]:.3f}, {cov[0, 1]:.3f}; {cov[1, 0]:.3f}, {cov[1, 1]:.3f}], "
            f"weight={self.weight:.3f}, score={self.score:.3f})"
        )
