import numpy as np
import pytest


@pytest.fixture
def stripes():
    """10x10 horizontal gradient with a 3x3 hole in the centre."""
    image = np.tile(np.linspace(0.0, 1.0, 10), (10, 1))
    omega = np.zeros_like(image, dtype=bool)
    omega[3:6, 3:6] = True
    return image, omega


@pytest.fixture
def edge_image():
    """8x8 image with a vertical straight edge and a hole across it."""
    image = np.zeros((8, 8))
    image[:, 4:] = 1.0
    omega = np.zeros_like(image, dtype=bool)
    omega[3:5, 3:5] = True
    return image, omega
