"""This module contains reusable layers and small network builders for generators and discriminators.

The InputErrorTap is special: the GAN engine places it in front of every discriminator to pick up the error that is
passed back into the generator.
"""
from .generic import hidden_linear, InputErrorTap, mlp_discriminator, mlp_generator
