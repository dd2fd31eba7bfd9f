from typing import NamedTuple

import torch
from torch import nn

from ..types import FlatFloat


class Segment(NamedTuple):
    """Contiguous range [offset, offset + length) of a flat buffer."""
    offset: int
    length: int

    def view(self,
             buffer: FlatFloat) -> FlatFloat:
        return buffer[self.offset:self.offset + self.length]


class ParameterArena:
    def __init__(self):
        """Single contiguous buffer holding the weights of generator and discriminator.

        The generator occupies the front of the buffer, the discriminator the rest. Both sub-models only ever get
        views into this buffer, so one optimizer step on `parameters` updates both networks at once. Gradient buffers
        follow the exact same layout; use `split` to get the matching views.
        """
        self.parameters = torch.empty(0)
        self.generator_segment = Segment(0, 0)
        self.discriminator_segment = Segment(0, 0)

    def allocate(self,
                 generator_weights: int,
                 discriminator_weights: int,
                 dtype: torch.dtype = torch.float32,
                 device: torch.device | str = "cpu"):
        """(Re)allocate the buffer and recompute both segments.

        The buffer is a leaf tensor requiring gradients, so it can be handed to any torch.optim optimizer directly.
        All views handed out before this call are stale afterwards.
        """
        self.parameters = torch.zeros(generator_weights + discriminator_weights, dtype=dtype, device=device,
                                      requires_grad=True)
        self.generator_segment = Segment(0, generator_weights)
        self.discriminator_segment = Segment(generator_weights, discriminator_weights)

    def is_empty(self) -> bool:
        return self.parameters.numel() == 0

    @property
    def buffer(self) -> FlatFloat:
        """The parameter storage without autograd history. Writes to this are visible everywhere."""
        return self.parameters.detach()

    def generator_view(self) -> FlatFloat:
        return self.generator_segment.view(self.buffer)

    def discriminator_view(self) -> FlatFloat:
        return self.discriminator_segment.view(self.buffer)

    def split(self,
              buffer: FlatFloat) -> tuple[FlatFloat, FlatFloat]:
        """Alias a buffer with the arena layout (e.g. a gradient) into generator and discriminator views."""
        if buffer.numel() != self.parameters.numel():
            raise ValueError(f"Buffer has {buffer.numel()} entries, but the arena holds {self.parameters.numel()}.")
        return self.generator_segment.view(buffer), self.discriminator_segment.view(buffer)

    def zeros(self) -> FlatFloat:
        """Fresh gradient buffer matching the arena in size, dtype and device."""
        return torch.zeros_like(self.buffer)


def layer_weight_count(layer: nn.Module) -> int:
    """Number of trainable weights in one layer (including its children)."""
    return sum(param.numel() for param in layer.parameters())


@torch.no_grad()
def bind_parameters(network: nn.Module,
                    flat_view: FlatFloat) -> int:
    """Point every parameter of a network at consecutive slices of a flat buffer.

    The current parameter values are discarded; the network sees whatever is in the buffer afterwards. Parameters are
    laid out in the order of network.parameters().

    Returns:
        Number of entries of flat_view that are now in use.
    """
    offset = 0
    for param in network.parameters():
        n_weights = param.numel()
        if offset + n_weights > flat_view.numel():
            raise ValueError(f"Flat view with {flat_view.numel()} entries is too small for the network.")
        param.data = flat_view[offset:offset + n_weights].view_as(param)
        offset += n_weights
    return offset
