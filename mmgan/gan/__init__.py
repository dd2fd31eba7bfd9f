"""This module contains the GAN engine, its training policies and a training driver.

The engine trains generator and discriminator from one flat parameter buffer, so that any first-order optimizer over
that buffer can drive it through evaluate/evaluate_with_gradient/gradient.

REFERENCES
Original paper: https://proceedings.neurips.cc/paper_files/paper/2014/file/f033ed80deb0234979a61f95710dbe25-Paper.pdf
DCGAN: https://arxiv.org/abs/1511.06434
Wasserstein GAN: https://arxiv.org/abs/1701.07875
Gradient penalty: https://arxiv.org/abs/1704.00028
"""
from .data import GANData
from .model import GAN
from .policy import earth_mover_distance, GANPolicy, gradient_penalty
from .trainer import GANTrainer
