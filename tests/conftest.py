"""Shared fixtures for the mmgan tests."""

import random

import matplotlib
import numpy as np
import pytest
import torch

matplotlib.use("Agg")

from mmgan.common import gaussian_noise
from mmgan.gan import GAN
from mmgan.layers import mlp_discriminator, mlp_generator


N_FEATURES = 2
NOISE_DIM = 4
BATCH_SIZE = 10
# Linear(4, 8) + Linear(8, 2)
GENERATOR_WEIGHTS = 4 * 8 + 8 + 8 * 2 + 2
# Linear(2, 8) + Linear(8, 1)
DISCRIMINATOR_WEIGHTS = 2 * 8 + 8 + 8 + 1


@pytest.fixture(autouse=True)
def _seed_everything():
    torch.manual_seed(0)
    random.seed(0)
    np.random.seed(0)


@pytest.fixture
def real_data():
    """100 points from a 2-D standard normal."""
    return torch.randn(100, N_FEATURES)


@pytest.fixture
def make_gan():
    """Factory for small MLP GANs. Keyword arguments override the GAN defaults used here."""
    def factory(generator_hidden=(8,), discriminator_hidden=(8,), **kwargs):
        settings = {"noise_dim": NOISE_DIM, "batch_size": BATCH_SIZE, "generator_update_step": 2}
        settings.update(kwargs)
        generator = mlp_generator(settings["noise_dim"], list(generator_hidden), N_FEATURES)
        discriminator = mlp_discriminator(N_FEATURES, list(discriminator_hidden))
        return GAN(generator, discriminator, gaussian_noise(), **settings)

    return factory


@pytest.fixture
def gan(make_gan, real_data):
    """Standard GAN with the training data already loaded."""
    model = make_gan()
    model.reset_data(real_data)
    return model
