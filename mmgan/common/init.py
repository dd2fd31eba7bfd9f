"""Initialization rules and noise sources for the GAN engine.

An initialization rule is called as rule(network, parameters, offset), where parameters is the full flat parameter
buffer and the network's weights live at parameters[offset:offset + n_weights]. By the time a rule is called, the
network's parameters are already views into the buffer, so rules may either write into the buffer slice or modify the
layers in-place.

A noise function takes no arguments and returns a single scalar sample.
"""
import random

import torch
from torch import nn

from .arena import layer_weight_count
from ..types import FlatFloat, InitializationRule, NoiseFunction


@torch.no_grad()
def default_initialization(network: nn.Module,
                           parameters: FlatFloat,
                           offset: int):
    """Use each layer's own reset_parameters, i.e. whatever torch would do for a freshly built layer."""
    for module in network.modules():
        if hasattr(module, "reset_parameters"):
            module.reset_parameters()


def gaussian_initialization(mean: float = 0.,
                            std: float = 0.02) -> InitializationRule:
    """Fill all weights (biases included) with Gaussian samples. std=0.02 is the usual DCGAN choice."""
    @torch.no_grad()
    def initialize(network: nn.Module,
                   parameters: FlatFloat,
                   offset: int):
        n_weights = layer_weight_count(network)
        parameters[offset:offset + n_weights].normal_(mean, std)

    return initialize


@torch.no_grad()
def zero_initialization(network: nn.Module,
                        parameters: FlatFloat,
                        offset: int):
    parameters[offset:offset + layer_weight_count(network)].zero_()


def gaussian_noise(mean: float = 0.,
                   std: float = 1.) -> NoiseFunction:
    return lambda: random.gauss(mean, std)


def uniform_noise(low: float = -1.,
                  high: float = 1.) -> NoiseFunction:
    return lambda: random.uniform(low, high)


def sample_noise(noise_fn: NoiseFunction,
                 shape: tuple[int, ...],
                 dtype: torch.dtype = torch.float32,
                 device: torch.device | str = "cpu") -> torch.Tensor:
    """Fill a tensor of the given shape element-wise by calling noise_fn once per entry."""
    n_samples = 1
    for dim in shape:
        n_samples *= dim
    return torch.tensor([noise_fn() for _ in range(n_samples)], dtype=dtype, device=device).view(*shape)
