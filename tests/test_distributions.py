"""
Tests for the service-time samplers.
"""
import numpy as np
import pytest

from distributions import (DISTRIBUTIONS, ConstantSampler, ExponentialSampler, JohnsonSBSampler,
                           Sampler, WeibullSampler, create_sampler)


def test_weibull_shape_one_is_exponential_with_mean_one_over_rate():
    sampler = WeibullSampler(shape=1.0, rate=4.0, rng=np.random.default_rng(0))
    values = sampler.sample(20000)
    assert min(values) >= 0.0
    assert np.mean(values) == pytest.approx(0.25, rel=0.05)


def test_weibull_location_shifts_support():
    sampler = WeibullSampler(shape=2.0, rate=1.0, location=3.0, rng=np.random.default_rng(1))
    assert min(sampler.sample(500)) >= 3.0


def test_same_seed_same_stream():
    a = create_sampler("exponential", np.random.default_rng(5), mean=2.0)
    b = create_sampler("exponential", np.random.default_rng(5), mean=2.0)
    assert a.sample(10) == b.sample(10)
    assert isinstance(a, ExponentialSampler)


def test_johnson_sb_is_bounded():
    sampler = JohnsonSBSampler(gamma=0.0, delta=1.0, xi=1.0, lam=2.0, rng=np.random.default_rng(2))
    values = sampler.sample(1000)
    assert all(1.0 <= v <= 3.0 for v in values)


def test_constant_sampler():
    assert ConstantSampler(0.5).sample(3) == [0.5, 0.5, 0.5]


def test_invalid_parameters_rejected():
    with pytest.raises(ValueError):
        WeibullSampler(shape=0.0)
    with pytest.raises(ValueError):
        create_sampler("pareto")


@pytest.mark.parametrize("name", DISTRIBUTIONS)
def test_every_registered_name_builds_with_defaults(name):
    """Each name the CLI accepts must work without extra parameters."""
    sampler = create_sampler(name, np.random.default_rng(3))
    values = sampler.sample(200)
    assert all(v >= 0.0 for v in values)
    assert np.median(values) == pytest.approx(0.25, rel=0.5)


def test_sampler_base_is_abstract():
    with pytest.raises(TypeError):
        Sampler()
