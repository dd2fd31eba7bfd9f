import torch
from torch import nn

from .arena import bind_parameters, layer_weight_count
from ..layers import InputErrorTap
from ..types import FlatFloat, LossFunction, ScalarFloat, TabularBatchFloat


class SubModel:
    def __init__(self,
                 network: nn.Sequential,
                 loss_fn: LossFunction | None = None):
        """Adapter giving a torch network the interface the GAN engine drives.

        The engine never lets the network own its weights: set_parameters re-points all of them into a flat view
        handed out by the arena. Gradients are likewise written into flat views instead of the .grad attributes.

        Parameters:
            network: Ordered layer collection. The discriminator's first layer should be an InputErrorTap.
            loss_fn: Maps (network outputs, responses) to a scalar loss. The discriminator needs one; the generator is
                     only ever trained through an injected backward error and can go without.
        """
        self.network = network
        self.loss_fn = loss_fn

        self.parameters = torch.empty(0)
        self.predictors = torch.empty(0)
        self.responses = torch.empty(0)
        # if set, gradient() back-propagates this instead of a loss
        self.error: TabularBatchFloat | None = None
        self.output: TabularBatchFloat | None = None
        self.deterministic = False

    @property
    def input_tap(self) -> InputErrorTap | None:
        if len(self.network) and isinstance(self.network[0], InputErrorTap):
            return self.network[0]
        return None

    def weight_count(self) -> int:
        return sum(layer_weight_count(layer) for layer in self.network)

    def set_parameters(self,
                       flat_view: FlatFloat):
        bind_parameters(self.network, flat_view)
        self.parameters = flat_view

    def reset_deterministic(self):
        """Deterministic means inference behavior for dropout, batch norm and friends."""
        self.network.train(not self.deterministic)

    def forward(self,
                inputs: TabularBatchFloat) -> TabularBatchFloat:
        self.output = self.network(inputs)
        return self.output

    def loss(self,
             outputs: TabularBatchFloat,
             targets: TabularBatchFloat) -> ScalarFloat:
        if self.loss_fn is None:
            raise ValueError("This sub-model has no loss function; inject an error to compute gradients instead.")
        return self.loss_fn(outputs, targets)

    def evaluate(self,
                 index: int,
                 batch_size: int) -> float:
        """Loss on predictor rows [index, index + batch_size) without computing gradients."""
        with torch.no_grad():
            outputs = self.forward(self.predictors[index:index + batch_size])
            return self.loss(outputs, self.responses[index:index + batch_size]).item()

    def evaluate_with_gradient(self,
                               index: int,
                               gradient: FlatFloat,
                               batch_size: int) -> float:
        """Loss on rows [index, index + batch_size); its parameter gradient overwrites `gradient`."""
        self.reset_gradients(gradient)
        with torch.enable_grad():
            outputs = self.forward(self.predictors[index:index + batch_size])
            loss = self.loss(outputs, self.responses[index:index + batch_size])
            self.backward(loss, gradient)
        return loss.item()

    def gradient(self,
                 index: int,
                 gradient: FlatFloat,
                 batch_size: int):
        """Like evaluate_with_gradient, but the loss is not needed.

        With an injected error, the network outputs for rows [index, index + batch_size) are back-propagated using that
        error as the output gradient.
        """
        if self.error is None:
            self.evaluate_with_gradient(index, gradient, batch_size)
            return

        self.reset_gradients(gradient)
        with torch.enable_grad():
            outputs = self.forward(self.predictors[index:index + batch_size])
            self.backward(outputs, gradient, self.error)

    def reset_gradients(self,
                        gradient: FlatFloat):
        gradient.zero_()

    def backward(self,
                 outputs: torch.Tensor,
                 gradient: FlatFloat,
                 error: torch.Tensor | None = None):
        """Accumulate d outputs / d parameters into the flat gradient view.

        If the network has an input tap, the error with respect to the network input is stored there as well.
        """
        params = list(self.network.parameters())
        tap = self.input_tap
        harvest_delta = tap is not None and tap.output is not None and tap.output.requires_grad
        wrt = params + [tap.output] if harvest_delta else params
        grads = torch.autograd.grad(outputs, wrt, grad_outputs=error, allow_unused=True)
        if harvest_delta:
            # None if the outputs do not depend on the input at all
            tap.delta = torch.zeros_like(tap.output) if grads[-1] is None else grads[-1].detach()
            grads = grads[:-1]

        offset = 0
        for param, grad in zip(params, grads):
            n_weights = param.numel()
            if grad is not None:
                gradient[offset:offset + n_weights].add_(grad.reshape(-1))
            offset += n_weights
