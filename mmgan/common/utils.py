from collections.abc import Iterable

import numpy as np
import torch
from matplotlib import pyplot as plt
from torch import nn

from ..types import TabularBatchFloat


def count_parameters(model: nn.Module) -> int:
    """Get number of (trainable) parameters in a model."""
    return sum(p.numel() for p in model.parameters() if p.requires_grad)


def plot_learning_curves(metrics: dict[str, np.ndarray],
                         keys: Iterable[str]):
    """Basic plots for metrics of interest.

    Parameters:
        metrics: Dictionary as returned by GANTrainer.train_model.
        keys: One plot is made for each metric named in here.
    """
    for key in keys:
        plt.figure(figsize=(12, 3))
        plt.plot(metrics[key])
        plt.title(key)
        plt.xlabel("Epoch")
        plt.show()


def plot_samples(real: TabularBatchFloat,
                 generated: TabularBatchFloat,
                 figure_size: tuple[int, int] = (6, 6),
                 title: str = "Generations") -> plt.Figure:
    """Scatter the first two features of real and generated samples on top of each other.

    One-dimensional data is plotted against the sample index instead.
    """
    real = torch.as_tensor(real).detach().cpu().numpy()
    generated = torch.as_tensor(generated).detach().cpu().numpy()
    figure = plt.figure(figsize=figure_size)
    for samples, label in [(real, "real"), (generated, "generated")]:
        if samples.shape[1] >= 2:
            plt.scatter(samples[:, 0], samples[:, 1], s=4, alpha=0.5, label=label)
        else:
            plt.scatter(np.arange(len(samples)), samples[:, 0], s=4, alpha=0.5, label=label)
    plt.legend()
    plt.title(title)
    return figure
