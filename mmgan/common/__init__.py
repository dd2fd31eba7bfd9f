"""This module contains functionalities that are reused across the GAN engine and its training driver.

This mostly concerns the shared parameter arena and the sub-model adapter on one hand, and initialization rules, noise
sources and general utility functions on the other.
"""
from .arena import bind_parameters, layer_weight_count, ParameterArena, Segment
from .init import (default_initialization, gaussian_initialization, gaussian_noise, sample_noise, uniform_noise,
                   zero_initialization)
from .submodel import SubModel
from .training import Checkpointer
from .utils import count_parameters, plot_learning_curves, plot_samples
