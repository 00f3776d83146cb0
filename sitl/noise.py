"""
Stochastic Processes
=====================
Gaussian sampler and the first-order drift processes (wind, GPS drift, GPS
velocity drift) used by the airframe models.
"""

import math

import numpy as np

from sitl import config as cfg


class RandomGaussian:
    """
    Standard-normal sampler using the polar (Marsaglia) form of Box–Muller.

    Uniforms come from a numpy ``Generator`` so a run is reproducible from
    its seed.  With no generator, numpy seeds from OS entropy.
    """

    def __init__(self, rng: np.random.Generator | None = None,
                 max_tries: int = cfg.GAUSS_MAX_TRIES):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.max_tries = max_tries

    def __call__(self) -> float:
        for _ in range(self.max_tries):
            v1 = 2.0 * self.rng.random() - 1.0
            v2 = 2.0 * self.rng.random() - 1.0
            s = v1 * v1 + v2 * v2
            if s >= 1.0:
                continue
            if s == 0.0:
                return 0.0
            return v1 * math.sqrt(-2.0 * math.log(s) / s)
        return 0.0

    def vec3(self) -> np.ndarray:
        """Three independent samples."""
        return np.array([self(), self(), self()])


class DriftProcess:
    """
    Per-axis AR(1) process  ``x <- decay * x + N(0,1) / noise_div``.

    Starts at zero.
    """

    __slots__ = ("decay", "noise_div", "gauss", "value")

    def __init__(self, decay: float, noise_div: float, gauss: RandomGaussian):
        self.decay = decay
        self.noise_div = noise_div
        self.gauss = gauss
        self.value = np.zeros(3)

    def step(self) -> np.ndarray:
        self.value = self.value * self.decay + self.gauss.vec3() / self.noise_div
        return self.value
