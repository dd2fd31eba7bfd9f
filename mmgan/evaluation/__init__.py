"""This module provides metrics for evaluating generative models against real data.

REFERENCES
FID: https://papers.nips.cc/paper/2017/hash/8a1d694707eb0fefe65871369074926d-Abstract.html
"""
from .metrics import frechet_distance, gan_frechet_distance
