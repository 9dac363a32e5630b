"""Tests for a single mixture component."""

import math

import numpy as np
import pytest

from onlineGmm import matvec
from onlineGmm.cluster import GaussianMixtureCluster, LabelHistogram, Observation
from onlineGmm.config import GMMConfig


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(100.0)


@pytest.fixture
def cluster(clock):
    c = GaussianMixtureCluster(GMMConfig(), clock=clock)
    c.initialize(Observation(label=0, density=0.0, thresh=0.0), matvec.vec2(0.0, 0.0))
    return c


def test_initialize_seeds_state(cluster, clock):
    cfg = cluster.config
    assert cluster.score == 1.0
    assert math.isfinite(cluster.log_gaussian_norm_factor)
    assert cluster.log_gaussian_norm_factor == pytest.approx(-math.log(2 * math.pi * math.sqrt(2.0)))
    np.testing.assert_allclose(cluster.gaussian_in.mean, [0.0, 0.0])
    np.testing.assert_allclose(cluster.gaussian_in.covariance, np.eye(2) * cfg.initial_variance)
    np.testing.assert_allclose(cluster.inv_covariance_in, np.eye(2) / cfg.initial_variance)
    np.testing.assert_allclose(cluster.gaussian_out.covariance, np.zeros((2, 2)))
    assert cluster.labels.average[0] == 1.0
    assert cluster.labels.count[0] == 1
    assert cluster.labels.num_valid == 1
    assert cluster.timestamp == clock.now


def test_initialize_without_observation_is_noop():
    c = GaussianMixtureCluster(GMMConfig())
    c.initialize(None, matvec.vec2(1.0, 1.0))
    assert c.score == 0.0
    assert math.isnan(c.log_gaussian_norm_factor)


def test_get_score_saturates_far_inputs(cluster):
    p = cluster.get_score(matvec.vec2(1e6, -1e6))
    assert cluster.mahalanobis_sq == cluster.config.max_distance
    assert math.isfinite(p)
    assert p == cluster.probability_of_in


def test_get_score_of_degenerate_cluster_is_finite(cluster):
    cov = matvec.mat2x2(1.0, 1.0, 1.0, 1.0)
    cluster.gaussian_in.covariance = cov
    cluster.llt_in = matvec.llt(cov)
    cluster.inv_covariance_in = matvec.inverse(cov)
    cluster.update_normal()
    assert not math.isfinite(cluster.log_gaussian_norm_factor)

    p = cluster.get_score(matvec.vec2(0.5, 0.5))
    assert p == 0.0
    assert cluster.mahalanobis_sq == cluster.config.max_distance


def test_update_input_probability(cluster):
    cluster.probability_of_in = 0.2
    cluster.update_input_probability(0.8)
    assert cluster.probability_condition_input == pytest.approx(0.25)
    cluster.update_input_probability(0.0)
    assert cluster.probability_condition_input == 0.0


def test_update_moves_statistics(cluster, clock):
    clock.now = 200.0
    cluster.get_score(matvec.vec2(1.0, 0.0))
    assert cluster.mahalanobis_sq == pytest.approx(0.5)
    cluster.update_input_probability(cluster.probability_of_in)
    assert cluster.probability_condition_input == pytest.approx(1.0)

    cluster.update(Observation(label=1, density=1.0, thresh=0.0), matvec.vec2(2.0, 0.0))

    assert cluster.score == pytest.approx(1.0)
    np.testing.assert_allclose(cluster.gaussian_in.mean, [0.05, 0.0])
    np.testing.assert_allclose(cluster.gaussian_out.mean, [0.1, 0.0])
    np.testing.assert_allclose(cluster.gaussian_in.covariance, [[1.900125, 0.0], [0.0, 1.9]])
    np.testing.assert_allclose(cluster.gaussian_out.covariance, [[0.00025, 0.0], [0.0, 0.0]])
    np.testing.assert_allclose(cluster.inv_covariance_in, [[1 / 1.900125, 0.0], [0.0, 1 / 1.9]])
    np.testing.assert_allclose(cluster.llt_in, [[math.sqrt(1.900125), 0.0], [0.0, math.sqrt(1.9)]])
    assert cluster.max_y == pytest.approx(3.8)
    assert cluster.min_y == pytest.approx(-3.8)
    np.testing.assert_allclose(cluster.labels.average[:2], [0.5, 0.5])
    assert cluster.labels.num_valid == 2
    assert cluster.timestamp == 200.0


def test_update_decays_score_toward_responsibility(cluster):
    cluster.get_score(matvec.vec2(1.0, 0.0))
    cluster.probability_condition_input = 0.0
    cluster.update(Observation(label=0, density=1.0, thresh=0.0), matvec.vec2(0.0, 0.0))
    expected = 1.0 - cluster.config.alpha * math.exp(-cluster.config.beta * 0.5)
    assert cluster.score == pytest.approx(expected)
    # zero responsibility leaves the means alone
    np.testing.assert_allclose(cluster.gaussian_in.mean, [0.0, 0.0])


def test_update_skipped_for_far_observation(cluster, clock):
    clock.now = 500.0
    cluster.get_score(matvec.vec2(100.0, 100.0))
    cluster.probability_condition_input = 1.0
    cluster.update(Observation(label=0, density=100.0, thresh=100.0), matvec.vec2(5.0, 5.0))
    np.testing.assert_allclose(cluster.gaussian_in.mean, [0.0, 0.0])
    assert cluster.score == 1.0
    assert cluster.timestamp == 100.0


def test_update_skipped_for_degenerate_cluster(cluster):
    cluster.log_gaussian_norm_factor = float("nan")
    cluster.mahalanobis_sq = 0.0
    cluster.probability_condition_input = 1.0
    cluster.update(Observation(label=0, density=1.0, thresh=1.0), matvec.vec2(1.0, 1.0))
    np.testing.assert_allclose(cluster.gaussian_in.mean, [0.0, 0.0])
    assert not cluster.is_alive()


def test_contribute_to_output_uses_transposed_cross_covariance(cluster):
    cluster.inv_covariance_in = np.eye(2)
    cluster.gaussian_out.mean = matvec.vec2(1.0, 1.0)
    # input axis a drives output axis b
    cluster.gaussian_out.covariance = matvec.mat2x2(0.0, 1.0, 0.0, 0.0)
    cluster.probability_condition_input = 0.5

    output = matvec.vec2(10.0, 10.0)
    cluster.contribute_to_output(matvec.vec2(2.0, 0.0), output)
    np.testing.assert_allclose(output, [10.5, 11.5])


def test_weigh_stores_probability_mass_not_label_index(cluster):
    cluster.labels.seed(2)
    for label in (0, 0, 1):
        cluster.labels.report(label)
    np.testing.assert_allclose(cluster.labels.average[:3], [0.5, 0.25, 0.25])

    cluster.gaussian_in.covariance = matvec.mat2x2(2.0, 1.0, 1.0, 2.0)
    cluster.weigh()

    assert cluster.primary_id == pytest.approx(0.5)
    assert cluster.secondary_id == pytest.approx(0.25)
    assert cluster.weight == pytest.approx(0.75 * 0.25)


def test_weigh_isotropic_covariance_has_zero_weight(cluster):
    cluster.weigh()
    assert cluster.primary_id == 1.0
    assert cluster.secondary_id == 0.0
    assert cluster.weight == 0.0


def test_label_histogram_bounds():
    hist = LabelHistogram(capacity=3)
    hist.seed(1)
    hist.report(7)
    hist.report(-1)
    assert hist.num_valid == 2
    hist.report(2)
    hist.report(2)
    assert hist.num_valid == 3
    assert hist.num_valid <= hist.capacity
    np.testing.assert_allclose(hist.average, [0.0, 1 / 3, 2 / 3])
    assert hist.average.sum() == pytest.approx(1.0)


def test_observation_validation():
    assert Observation(label=0, density=1.0, thresh=2.0).is_valid(8)
    assert not Observation(label=8, density=1.0, thresh=2.0).is_valid(8)
    assert not Observation(label=0, density=float("nan"), thresh=2.0).is_valid(8)
    assert not Observation(label=None, density=1.0, thresh=2.0).is_valid(8)
    assert not Observation(label=1.7, density=1.0, thresh=2.0).is_valid(8)
    assert Observation(label=1.0, density=1.0, thresh=2.0).is_valid(8)
    assert not Observation(label=float("inf"), density=1.0, thresh=2.0).is_valid(8)
