import numpy as np
import pytest

from sitl import config as cfg
from sitl.uavobjects import HomeLocation, MeasurementBus


class _ZeroGauss:
    """Noise source that always returns 0 (noiseless channels)."""

    def __call__(self):
        return 0.0

    def vec3(self):
        return np.zeros(3)


@pytest.fixture
def zero_gauss():
    return _ZeroGauss()


@pytest.fixture
def bus():
    b = MeasurementBus()
    b.initialize()
    b.set(HomeLocation(latitude=0, longitude=0, altitude=0.0, be=cfg.HOME_BE))
    return b
