"""
Service-time samplers.

Every sampler draws from an injected numpy Generator and exposes
`next_double()`. WeibullSampler follows the (shape, rate, location)
parameterisation F(x) = 1 - exp(-(rate * (x - location)) ** shape); with
shape 1 and rate 4 it is an exponential with mean 0.25. The Johnson and
constant defaults put their median at 0.25.
"""
from abc import ABC, abstractmethod

import numpy as np


class Sampler(ABC):
    def __init__(self, rng=None):
        self.rng = rng if rng is not None else np.random.default_rng()

    @abstractmethod
    def next_double(self):
        pass

    def sample(self, n):
        return [self.next_double() for _ in range(n)]


class WeibullSampler(Sampler):
    def __init__(self, shape=1.0, rate=4.0, location=0.0, rng=None):
        super().__init__(rng)
        if shape <= 0 or rate <= 0:
            raise ValueError("shape and rate must be positive")
        self.shape = shape
        self.rate = rate
        self.location = location

    def next_double(self):
        return self.location + float(self.rng.weibull(self.shape)) / self.rate


class ExponentialSampler(Sampler):
    def __init__(self, mean=0.25, rng=None):
        super().__init__(rng)
        if mean <= 0:
            raise ValueError("mean must be positive")
        self.mean = mean

    def next_double(self):
        return float(self.rng.exponential(self.mean))


class JohnsonSBSampler(Sampler):
    """Johnson SB: X = xi + lam / (1 + exp(-(Z - gamma) / delta)), Z standard normal."""

    def __init__(self, gamma=0.0, delta=1.0, xi=0.0, lam=0.5, rng=None):
        super().__init__(rng)
        if delta <= 0 or lam <= 0:
            raise ValueError("delta and lambda must be positive")
        self.gamma = gamma
        self.delta = delta
        self.xi = xi
        self.lam = lam

    def next_double(self):
        z = self.rng.standard_normal()
        return float(self.xi + self.lam / (1.0 + np.exp(-(z - self.gamma) / self.delta)))


class JohnsonSLSampler(Sampler):
    """Johnson SL (lognormal family): X = xi + lam * exp((Z - gamma) / delta)."""

    def __init__(self, gamma=0.0, delta=1.0, xi=0.0, lam=0.25, rng=None):
        super().__init__(rng)
        if delta <= 0:
            raise ValueError("delta must be positive")
        self.gamma = gamma
        self.delta = delta
        self.xi = xi
        self.lam = lam

    def next_double(self):
        z = self.rng.standard_normal()
        return float(self.xi + self.lam * np.exp((z - self.gamma) / self.delta))


class ConstantSampler(Sampler):
    def __init__(self, value=0.25):
        super().__init__(None)
        self.value = value

    def next_double(self):
        return self.value


DISTRIBUTIONS = ("weibull", "exponential", "johnson-sb", "johnson-sl", "constant")


def create_sampler(name, rng=None, **params):
    if name == "weibull":
        return WeibullSampler(rng=rng, **params)
    elif name == "exponential":
        return ExponentialSampler(rng=rng, **params)
    elif name == "johnson-sb":
        return JohnsonSBSampler(rng=rng, **params)
    elif name == "johnson-sl":
        return JohnsonSLSampler(rng=rng, **params)
    elif name == "constant":
        return ConstantSampler(**params)
    raise ValueError(f"unknown distribution {name!r}")
