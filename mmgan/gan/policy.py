from enum import Enum

import torch
from torch import nn

from ..common import SubModel
from ..types import LossFunction, ScalarFloat, ScoreBatchFloat, TabularBatchFloat


class GANPolicy(Enum):
    """Training policies supported by the GAN engine.

    STANDARD and DCGAN train identically (binary cross-entropy with real/fake labels); the difference between the two
    lies in the network architectures you supply. WGAN uses a critic with score labels and weight clipping, WGANGP
    replaces the clipping by a gradient penalty.
    """
    STANDARD = "standard"
    DCGAN = "dcgan"
    WGAN = "wgan"
    WGANGP = "wgangp"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        raise ValueError(f"Invalid policy {value}. Allowed are {', '.join(member.value for member in cls)}.")

    @property
    def is_wasserstein(self) -> bool:
        return self in (GANPolicy.WGAN, GANPolicy.WGANGP)

    @property
    def clips_weights(self) -> bool:
        return self is GANPolicy.WGAN

    @property
    def penalizes_gradient(self) -> bool:
        return self is GANPolicy.WGANGP

    def default_labels(self) -> tuple[float, float]:
        """(real_label, fake_label). Wasserstein critics use +1/-1 as score weights instead of class labels."""
        return (1., -1.) if self.is_wasserstein else (1., 0.)

    def default_loss(self) -> LossFunction:
        return earth_mover_distance if self.is_wasserstein else nn.BCEWithLogitsLoss()


def earth_mover_distance(outputs: ScoreBatchFloat,
                         targets: ScoreBatchFloat) -> ScalarFloat:
    """Critic loss for Wasserstein GANs.

    With +1 for real and -1 for generated samples, minimizing this pushes real scores up and generated scores down.
    Relabeling generated samples as real turns it into the generator loss -E[D(G(z))].
    """
    return -(targets * outputs).mean()


def gradient_penalty(discriminator: SubModel,
                     real: TabularBatchFloat,
                     generated: TabularBatchFloat) -> ScalarFloat:
    """Penalty pushing the norm of the critic's input gradient towards 1 on real/generated interpolations.

    The result keeps its graph, so it can be differentiated once more with respect to the critic parameters.
    Real and generated batches must have the same shape.
    """
    alpha_shape = (real.shape[0],) + (1,) * (real.dim() - 1)
    alpha = torch.rand(alpha_shape, dtype=real.dtype, device=real.device)
    interpolated = (alpha * real.detach() + (1 - alpha) * generated.detach()).requires_grad_(True)
    with torch.enable_grad():
        scores = discriminator.forward(interpolated)
        input_gradients = torch.autograd.grad(scores, interpolated, grad_outputs=torch.ones_like(scores),
                                              create_graph=True)[0]
        gradient_norms = input_gradients.flatten(start_dim=1).norm(2, dim=1)
        return ((gradient_norms - 1)**2).mean()
