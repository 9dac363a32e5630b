"""
Online Gaussian mixture regression model.

Functions/classes:
- GaussianMixtureModel.add_value: one full observation cycle (score, blend,
  update, prune, spawn)
- GaussianMixtureModel.add_cluster / remove_cluster: fixed-capacity slot
  management with swap-to-compact removal
- GaussianMixtureModel.summary: per-cluster diagnostics table
"""

import logging
from typing import Callable, List, Optional

import numpy as np
import pandas as pd

from . import matvec
from .clock import timestamp as default_clock
from .cluster import GaussianMixtureCluster, Observation
from .config import GMMConfig


class GaussianMixtureModel:
    """
    Fixed-capacity mixture of GaussianMixtureCluster slots.

    Only the first `num_clusters` slots are live. Slots are allocated once
    here and re-initialized on reuse. Not safe for concurrent mutation;
    serialize access per model.
    """

    def __init__(
        self,
        name: str = "gmm",
        config: Optional[GMMConfig] = None,
        clock: Callable[[], float] = default_clock,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or GMMConfig()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.initialize(name)

    def initialize(self, name: str) -> None:
        self.name = name
        self.logger.debug("Initializing %s GMM", self.name)
        self.cluster: List[GaussianMixtureCluster] = [
            GaussianMixtureCluster(self.config, clock=self.clock, logger=self.logger)
            for _ in range(self.config.max_clusters)
        ]
        self.num_clusters = 0

        self.min_in = matvec.vec2()
        self.max_in = matvec.vec2()
        self.min_out = matvec.vec2()
        self.max_out = matvec.vec2()

        self.output = matvec.vec2()
        self.total_probability = 0.0
        self.best_distance = self.config.max_distance
        self.max_error = 0.0

    @property
    def clusters(self) -> List[GaussianMixtureCluster]:
        return self.cluster[:self.num_clusters]

    def _update_ranges(self, input_vec: np.ndarray, value: np.ndarray) -> None:
        if not self.num_clusters:
            self.min_in = input_vec.copy()
            self.max_in = input_vec.copy()
            self.min_out = value.copy()
            self.max_out = value.copy()
        else:
            self.min_in = np.minimum(self.min_in, input_vec)
            self.max_in = np.maximum(self.max_in, input_vec)
            self.min_out = np.minimum(self.min_out, value)
            self.max_out = np.maximum(self.max_out, value)

    def get_score_sum_of_clusters(self, input_vec: np.ndarray) -> float:
        return sum(cluster.get_score(input_vec) for cluster in self.clusters)

    def get_output_and_best_distance(
        self,
        total_probability: float,
        input_vec: np.ndarray,
        output: np.ndarray,
    ) -> float:
        best_match_distance = self.config.max_distance
        for cluster in self.clusters:
            cluster.update_input_probability(total_probability)
            if cluster.score > self.config.min_cluster_score:
                cluster.contribute_to_output(input_vec, output)
            if cluster.mahalanobis_sq < best_match_distance:
                best_match_distance = cluster.mahalanobis_sq
        return best_match_distance

    def get_max_error(self, output: np.ndarray, value: np.ndarray) -> float:
        """Largest output error, each axis relative to the observed output range."""
        output_delta = matvec.subtract(value, output)
        min_max_delta = matvec.subtract(self.max_out, self.min_out)
        self.logger.debug("Output delta: <%7.3f, %7.3f>", *output_delta)
        a_error = abs(matvec.zdiv(output_delta[0], min_max_delta[0]))
        b_error = abs(matvec.zdiv(output_delta[1], min_max_delta[1]))
        return max(a_error, b_error)

    def add_cluster(self, observation: Observation, value: np.ndarray) -> None:
        if self.num_clusters >= self.config.max_clusters:
            self.logger.debug(
                "%s GMM is full (%d clusters), not adding cluster", self.name, self.num_clusters
            )
            return
        self.cluster[self.num_clusters].initialize(observation, value)
        self.num_clusters += 1
        self.logger.debug(
            "Added cluster at <%.3f, %.3f> (%d total)",
            observation.density, observation.thresh, self.num_clusters,
        )

    def remove_cluster(self, index: int) -> None:
        self.num_clusters -= 1
        # Swap the removed slot with the last live slot
        removed = self.cluster[index]
        self.cluster[index] = self.cluster[self.num_clusters]
        self.cluster[self.num_clusters] = removed
        self.logger.debug("Removed cluster %d (%d remaining)", index, self.num_clusters)

    def update(self, observation: Observation, value: np.ndarray) -> None:
        """Update every live cluster, then prune dead, expired and degenerate ones."""
        for cluster in self.clusters:
            cluster.update(observation, value)

        now = self.clock()
        i = 0
        while i < self.num_clusters:
            if self.cluster[i].is_alive(now):
                i += 1
            else:
                # Slot i now holds the previously last cluster; check it too
                self.remove_cluster(i)

        if self.logger.isEnabledFor(logging.DEBUG):
            for i, cluster in enumerate(self.clusters):
                self.logger.debug("%d: %r", i, cluster)

    def add_value(self, observation: Optional[Observation], value) -> Optional[np.ndarray]:
        """
        Feed one (observation, value) pair through the model.

        Args:
            observation: Label plus (density, thresh) input
            value: Target output pair

        Returns:
            The blended output predicted for this input before the update,
            or None if the input was rejected.
        """
        if observation is None or value is None:
            self.logger.warning("Ignoring empty observation for %s GMM", self.name)
            return None
        value = np.asarray(value, dtype=np.float64)
        if (
            value.shape != (2,)
            or not np.all(np.isfinite(value))
            or not observation.is_valid(self.config.num_labels)
        ):
            self.logger.warning("Ignoring malformed observation %s -> %s", observation, value)
            return None

        observation_vec = observation.vector
        self._update_ranges(observation_vec, value)

        output = matvec.vec2()
        total_probability = self.get_score_sum_of_clusters(observation_vec)
        best_distance = self.get_output_and_best_distance(total_probability, observation_vec, output)
        max_error = self.get_max_error(output, value)

        self.update(observation, value)
        self.logger.debug("Max error: %.2f", max_error)

        self.output = output
        self.total_probability = total_probability
        self.best_distance = best_distance
        self.max_error = max_error

        # Add cluster if error or distance is too high for a cluster match
        if self.num_clusters < self.config.max_clusters and (
            not self.num_clusters
            or (max_error > self.config.max_error and best_distance > self.config.max_mahalanobis_sq)
        ):
            self.add_cluster(observation, value)

        return output.copy()

    def weigh(self) -> None:
        for cluster in self.clusters:
            cluster.weigh()

    def summary(self) -> pd.DataFrame:
        """One row per live cluster."""
        rows = []
        for i, cluster in enumerate(self.clusters):
            cov = cluster.gaussian_in.covariance
            rows.append({
                "slot": i,
                "mean_in_a": float(cluster.gaussian_in.mean[0]),
                "mean_in_b": float(cluster.gaussian_in.mean[1]),
                "mean_out_a": float(cluster.gaussian_out.mean[0]),
                "mean_out_b": float(cluster.gaussian_out.mean[1]),
                "cov_a": float(cov[0, 0]),
                "cov_b": float(cov[0, 1]),
                "cov_c": float(cov[1, 0]),
                "cov_d": float(cov[1, 1]),
                "score": float(cluster.score),
                "weight": float(cluster.weight),
                "primary_id": float(cluster.primary_id),
                "secondary_id": float(cluster.secondary_id),
                "log_norm_factor": float(cluster.log_gaussian_norm_factor),
                "dominant_label": int(np.argmax(cluster.labels.count)),
            })
        return pd.DataFrame(rows)

    def __repr__(self) -> str:
        return f"GaussianMixtureModel(name={self.name!r}, num_clusters={self.num_clusters})"
