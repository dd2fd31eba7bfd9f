"""This module contains a GAN training engine built around a single flat parameter buffer.

Generator and discriminator are ordinary torch networks, but their weights live in one contiguous buffer owned by the
engine. The engine exposes loss and gradient with respect to that buffer, so any first-order optimizer can train both
networks jointly, while the engine decides how often each network actually gets a gradient. Standard, DCGAN,
Wasserstein and Wasserstein-GP training are supported.
"""
