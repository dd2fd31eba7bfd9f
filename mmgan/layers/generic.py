import torch
from torch import nn

from ..types import TabularBatchFloat


class InputErrorTap(nn.Module):
    """Identity layer marking the join point between generator and discriminator.

    The GAN engine puts this in front of every discriminator. Whenever the discriminator computes gradients, the error
    with respect to the discriminator input is stored in `delta`. For generated inputs, this is exactly the error
    signal that has to be pushed back through the generator. The layer has no weights.
    """
    def __init__(self):
        super().__init__()
        self.output: TabularBatchFloat | None = None
        self.delta: TabularBatchFloat | None = None

    def forward(self,
                inputs: TabularBatchFloat) -> TabularBatchFloat:
        # the input needs to be part of the graph, else there is no error to harvest
        if torch.is_grad_enabled() and not inputs.requires_grad:
            inputs = inputs.detach().requires_grad_(True)
        self.output = inputs
        return inputs


def hidden_linear(in_dim: int,
                  dim: int,
                  activation: type[nn.Module],
                  norm: type[nn.Module] | None = None,
                  dropout: float = 0.) -> nn.Sequential:
    """Basic linear-norm-activation(-dropout) sequence.

    Lazy layers cannot be used with a shared parameter buffer, since weight counts must be known before the first
    forward pass. Hence the explicit in_dim.

    Parameters:
        in_dim: Input size.
        dim: Desired output size.
        activation: Activation function. Should be passed like nn.ReLU, NOT nn.ReLU()!
        norm: Optional normalization, passed just like the activation, e.g. nn.BatchNorm1d. The linear layer has no
              bias if this is given.
        dropout: If > 0, add dropout with this probability at the end.
    """
    layers = [nn.Linear(in_dim, dim, bias=norm is None)]
    if norm is not None:
        layers.append(norm(dim))
    layers.append(activation())
    if dropout > 0:
        layers.append(nn.Dropout(dropout))
    return nn.Sequential(*layers)


def mlp_generator(noise_dim: int,
                  hidden_dims: list[int],
                  output_dim: int,
                  activation: type[nn.Module] = nn.ReLU,
                  norm: type[nn.Module] | None = None,
                  output_activation: type[nn.Module] | None = None) -> nn.Sequential:
    """Fully-connected generator mapping noise vectors to samples.

    Parameters:
        noise_dim: Size of the noise vectors.
        hidden_dims: Sizes of the hidden layers.
        output_dim: Size of a generated sample.
        activation, norm: See hidden_linear.
        output_activation: E.g. nn.Tanh if the data is scaled to [-1, 1]. None means linear outputs.
    """
    layers = []
    in_dim = noise_dim
    for dim in hidden_dims:
        layers.append(hidden_linear(in_dim, dim, activation, norm))
        in_dim = dim
    layers.append(nn.Linear(in_dim, output_dim))
    if output_activation is not None:
        layers.append(output_activation())
    return nn.Sequential(*layers)


def mlp_discriminator(input_dim: int,
                      hidden_dims: list[int],
                      activation: type[nn.Module] = nn.LeakyReLU,
                      dropout: float = 0.) -> nn.Sequential:
    """Fully-connected discriminator returning one unnormalized score per sample.

    Do NOT add a sigmoid at the end; the cross-entropy loss works on logits and Wasserstein critics need raw scores.
    No normalization is used, since batch norm in the discriminator does not play well with the gradient penalty.
    """
    layers = []
    in_dim = input_dim
    for dim in hidden_dims:
        layers.append(hidden_linear(in_dim, dim, activation, dropout=dropout))
        in_dim = dim
    layers.append(nn.Linear(in_dim, 1))
    return nn.Sequential(*layers)
