from __future__ import annotations

import os

import torch
from torch import nn

from .data import GANData
from .policy import GANPolicy, gradient_penalty
from ..common import default_initialization, ParameterArena, sample_noise, SubModel
from ..layers import InputErrorTap
from ..types import (FlatFloat, InitializationRule, LossFunction, NoiseBatchFloat, NoiseFunction, ScoreBatchFloat,
                     TabularBatchFloat)


class GAN:
    def __init__(self,
                 generator: nn.Module,
                 discriminator: nn.Module,
                 noise_fn: NoiseFunction,
                 noise_dim: int,
                 batch_size: int,
                 generator_update_step: int,
                 pre_train_size: int = 0,
                 multiplier: float = 1.,
                 clipping_parameter: float = 0.01,
                 penalty_weight: float = 10.,
                 policy: GANPolicy | str = GANPolicy.STANDARD,
                 initialize_rule: InitializationRule = default_initialization,
                 discriminator_loss: LossFunction | None = None):
        """GAN engine training generator and discriminator from one flat parameter buffer.

        The engine is meant to be driven by a generic first-order optimizer: evaluate, evaluate_with_gradient and
        gradient take a minibatch index and report loss and gradient with respect to *all* weights (generator first,
        then discriminator). The discriminator is updated in every step; the generator only every generator_update_step
        steps once the pretraining phase is over. Steps where the generator is not updated produce a zero generator
        gradient.

        Parameters:
            generator: Maps (batch x noise_dim) noise to (batch x features) samples. Should be a Sequential or a single
                       module. Must not contain lazy layers.
            discriminator: Maps samples to one unnormalized score each, i.e. (batch x 1). Do NOT end it with a
                           sigmoid; the cross-entropy loss works on logits.
            noise_fn: Zero-argument function returning one noise sample. Called once per noise entry.
            noise_dim: Size of a single noise vector.
            batch_size: Number of real and generated samples per step each.
            generator_update_step: The generator is updated every this many steps.
            pre_train_size: Number of initial steps that only train the discriminator.
            multiplier: Generator gradients are scaled by this.
            clipping_parameter: WGAN only. Discriminator weights are clamped to [-clipping_parameter,
                                clipping_parameter] at the start of each training step. Call clip_weights
                                after each optimizer step as well if you drive the engine yourself.
            penalty_weight: WGANGP only. Weight of the gradient penalty added to the discriminator loss.
            policy: One of the GANPolicy members, or its name ('standard', 'dcgan', 'wgan', 'wgangp').
            initialize_rule: Called as initialize_rule(network, parameters, offset) for each network after the flat
                             buffer has been allocated.
            discriminator_loss: Maps (discriminator outputs, labels) to a scalar. Defaults to binary cross-entropy on
                                logits for standard/DCGAN and the earth mover distance for the Wasserstein policies.
        """
        self.policy = GANPolicy(policy)
        if noise_dim < 1 or batch_size < 1:
            raise ValueError(f"noise_dim and batch_size must be positive, got {noise_dim} and {batch_size}.")
        if generator_update_step < 1:
            raise ValueError(f"generator_update_step must be at least 1, got {generator_update_step}.")
        if pre_train_size < 0:
            raise ValueError(f"pre_train_size must not be negative, got {pre_train_size}.")
        if self.policy.clips_weights and clipping_parameter <= 0:
            raise ValueError(f"WGAN needs a positive clipping_parameter, got {clipping_parameter}.")
        if self.policy.penalizes_gradient and penalty_weight < 0:
            raise ValueError(f"penalty_weight must not be negative, got {penalty_weight}.")

        if not isinstance(generator, nn.Sequential):
            generator = nn.Sequential(generator)
        discriminator_layers = list(discriminator) if isinstance(discriminator, nn.Sequential) else [discriminator]
        if discriminator_loss is None:
            discriminator_loss = self.policy.default_loss()
        self.generator = SubModel(generator)
        # the tap joins both graphs: its delta is the error the generator is trained with
        self.discriminator = SubModel(nn.Sequential(InputErrorTap(), *discriminator_layers), discriminator_loss)

        self.noise_fn = noise_fn
        self.noise_dim = noise_dim
        self.batch_size = batch_size
        self.generator_update_step = generator_update_step
        self.pre_train_size = pre_train_size
        self.multiplier = multiplier
        self.clipping_parameter = clipping_parameter
        self.penalty_weight = penalty_weight
        self.initialize_rule = initialize_rule

        self.arena = ParameterArena()
        self.data = GANData()
        self.noise = torch.empty(0)
        self.noise_gradient_discriminator = torch.empty(0)
        self.gen_weights = 0
        self.disc_weights = 0
        self.current_batch = 0
        self.is_reset = False
        self.deterministic = False
        self.real_label, self.fake_label = self.policy.default_labels()

    @property
    def parameter(self) -> FlatFloat:
        """The flat buffer with all weights. This is what an optimizer should update."""
        return self.arena.parameters

    @property
    def num_functions(self) -> int:
        """Number of real training samples."""
        return self.data.num_functions

    @property
    def dtype(self) -> torch.dtype:
        first_param = next(self.generator.network.parameters(), None)
        return torch.float32 if first_param is None else first_param.dtype

    @property
    def device(self) -> torch.device:
        """Where the networks live. Buffers, data and noise are allocated there as well."""
        first_param = next(self.generator.network.parameters(), None)
        return torch.device("cpu") if first_param is None else first_param.device

    def reset(self):
        """Allocate the shared buffer, hand out views to both networks and initialize them."""
        self.gen_weights = self.generator.weight_count()
        self.disc_weights = self.discriminator.weight_count()
        self.arena.allocate(self.gen_weights, self.disc_weights, self.dtype, self.device)
        self.share_parameters()

        self.initialize_rule(self.generator.network, self.arena.buffer, 0)
        self.initialize_rule(self.discriminator.network, self.arena.buffer, self.gen_weights)
        self.is_reset = True

    def share_parameters(self):
        """(Re-)alias both networks' weights into their arena segments."""
        self.generator.set_parameters(self.arena.generator_view())
        self.discriminator.set_parameters(self.arena.discriminator_view())

    def reset_data(self,
                   train_data: TabularBatchFloat,
                   real_label: float | None = None,
                   fake_label: float | None = None):
        """Load a new training set.

        Parameters:
            train_data: Real samples, one per row. Must not be empty.
            real_label, fake_label: Discriminator targets for real and generated samples. None means the policy
                                    default (1/0 for standard and DCGAN, 1/-1 for Wasserstein policies).
        """
        default_real, default_fake = self.policy.default_labels()
        self.real_label = default_real if real_label is None else real_label
        self.fake_label = default_fake if fake_label is None else fake_label
        self.current_batch = 0
        self.noise = torch.empty(self.batch_size, self.noise_dim, dtype=self.dtype, device=self.device)

        self.deterministic = True
        self.reset_deterministic()

        self.data.load(train_data, self.batch_size, self.real_label, self.fake_label, self.dtype, self.device)
        self.discriminator.predictors = self.data.predictors
        self.discriminator.responses = self.data.responses

        self.generator.predictors = torch.empty(self.batch_size, self.noise_dim, dtype=self.dtype,
                                                device=self.device)
        self.generator.responses = torch.empty(self.batch_size, *self.data.feature_shape, dtype=self.dtype,
                                              device=self.device)

        if not self.is_reset:
            self.reset()

    def reset_deterministic(self):
        self.generator.deterministic = self.deterministic
        self.discriminator.deterministic = self.deterministic
        self.generator.reset_deterministic()
        self.discriminator.reset_deterministic()

    def set_deterministic(self,
                          deterministic: bool):
        """Switch between inference (True) and training (False) behavior; does nothing if already there."""
        if self.deterministic != deterministic:
            self.deterministic = deterministic
            self.reset_deterministic()

    def sample_noise(self,
                     n_samples: int | None = None) -> NoiseBatchFloat:
        n_samples = self.batch_size if n_samples is None else n_samples
        return sample_noise(self.noise_fn, (n_samples, self.noise_dim), self.dtype, self.device)

    def evaluate(self,
                 parameters: FlatFloat,
                 i: int,
                 batch_size: int) -> float:
        """Discriminator loss on the real minibatch at row i plus a freshly generated one. No gradients.

        parameters and batch_size only mirror the optimizer-facing signature; the engine always uses its own buffer
        and batch size.
        """
        if self.arena.is_empty():
            self.reset()
        self.set_deterministic(True)

        result = self.discriminator.evaluate(i, self.batch_size)

        self.noise = self.sample_noise()
        with torch.no_grad():
            self.data.write_generated(self.generator.forward(self.noise))
        self.data.label_generated(self.fake_label)
        result += self.discriminator.evaluate(self.num_functions, self.batch_size)
        return result

    def evaluate_with_gradient(self,
                               parameters: FlatFloat,
                               i: int,
                               gradient: FlatFloat,
                               batch_size: int) -> float:
        """One training step: loss and gradient for the real minibatch at row i and a freshly generated one.

        The discriminator part of gradient always holds the discriminator gradient for both minibatches. The generator
        part is non-zero only if the generator is due for an update, in which case it holds the (scaled) gradient of
        the adversarial loss, computed by relabeling generated samples as real and passing the discriminator's input
        error back through the generator.

        Parameters:
            parameters: Ignored; see evaluate.
            i: Row index of the real minibatch.
            gradient: Output buffer. If empty, it is resized in-place to the number of weights.
            batch_size: Ignored; see evaluate.

        Returns:
            Sum of the discriminator losses on real and generated samples (plus the gradient penalty for WGANGP).
        """
        if self.arena.is_empty():
            self.reset()
        if gradient.numel() == 0:
            gradient.resize_(self.parameter.numel())
        gradient.zero_()

        if self.noise_gradient_discriminator.numel() != self.disc_weights:
            self.noise_gradient_discriminator = torch.zeros(self.disc_weights, dtype=self.dtype,
                                                            device=self.device)
        else:
            self.noise_gradient_discriminator.zero_()

        self.set_deterministic(False)
        if self.policy.clips_weights:
            self.clip_weights()

        gradient_generator, gradient_discriminator = self.arena.split(gradient)

        result = self.discriminator.evaluate_with_gradient(i, gradient_discriminator, self.batch_size)

        self.noise = self.sample_noise()
        with torch.no_grad():
            self.data.write_generated(self.generator.forward(self.noise))
        self.data.label_generated(self.fake_label)

        result += self.discriminator.evaluate_with_gradient(self.num_functions, self.noise_gradient_discriminator,
                                                            self.batch_size)
        gradient_discriminator += self.noise_gradient_discriminator

        if self.policy.penalizes_gradient:
            result += self.penalty_with_gradient(i, gradient_discriminator)

        if self.generator_update_due():
            # minimize -log(D(G(noise))): pretend the generated samples are real
            self.data.label_generated(self.real_label)
            self.discriminator.gradient(self.num_functions, self.noise_gradient_discriminator, self.batch_size)
            self.generator.error = self.discriminator.input_tap.delta

            self.generator.predictors.copy_(self.noise)
            self.generator.gradient(0, gradient_generator, self.batch_size)
            gradient_generator *= self.multiplier
            self.data.label_generated(self.fake_label)

        self.current_batch += 1
        if self.pre_train_size > 0:
            self.pre_train_size -= 1
        return result

    def gradient(self,
                 parameters: FlatFloat,
                 i: int,
                 gradient: FlatFloat,
                 batch_size: int):
        """Same as evaluate_with_gradient, for optimizers that only need the gradient."""
        self.evaluate_with_gradient(parameters, i, gradient, batch_size)

    def generator_update_due(self) -> bool:
        return self.current_batch % self.generator_update_step == 0 and self.pre_train_size == 0

    def penalty_with_gradient(self,
                              i: int,
                              gradient_discriminator: FlatFloat) -> float:
        """Weighted gradient penalty for the current real/generated minibatches; its gradient is accumulated."""
        real, _ = self.data.real_slice(i)
        generated, _ = self.data.generated_slice()
        with torch.enable_grad():
            penalty = self.penalty_weight * gradient_penalty(self.discriminator, real, generated)
            self.discriminator.backward(penalty, gradient_discriminator)
        return penalty.item()

    @torch.no_grad()
    def clip_weights(self):
        """Clamp the discriminator weights to [-clipping_parameter, clipping_parameter].

        evaluate_with_gradient clamps before computing anything, but the optimizer step afterwards can leave weights
        outside the range again. GANTrainer calls this after every step; custom training loops should do the same.
        """
        self.discriminator.parameters.clamp_(-self.clipping_parameter, self.clipping_parameter)

    def shuffle(self):
        self.data.shuffle()

    def forward(self,
                inputs: NoiseBatchFloat) -> ScoreBatchFloat:
        """Generator followed by discriminator."""
        if self.arena.is_empty():
            self.reset()
        self.generator.forward(inputs)
        return self.discriminator.forward(self.generator.output)

    def predict(self,
                inputs: NoiseBatchFloat) -> ScoreBatchFloat:
        """Discriminator scores for samples generated from the given noise, in inference mode."""
        if self.arena.is_empty():
            self.reset()
        self.set_deterministic(True)
        with torch.no_grad():
            return self.forward(inputs)

    def generate(self,
                 n_samples: int) -> TabularBatchFloat:
        """Draw n_samples noise vectors and run them through the generator in inference mode."""
        if self.arena.is_empty():
            self.reset()
        self.set_deterministic(True)
        with torch.no_grad():
            return self.generator.forward(self.sample_noise(n_samples))

    def state_dict(self) -> dict:
        return {"parameter": self.arena.buffer.clone(),
                "generator": self.generator.network.state_dict(),
                "discriminator": self.discriminator.network.state_dict(),
                "reset": self.is_reset,
                "gen_weights": self.gen_weights,
                "disc_weights": self.disc_weights}

    def load_state_dict(self,
                        state: dict):
        """Restore weights and re-bind every layer into the restored buffer.

        Networks must have the same architecture as the ones the state was saved from.
        """
        gen_weights, disc_weights = state["gen_weights"], state["disc_weights"]
        if gen_weights != self.generator.weight_count() or disc_weights != self.discriminator.weight_count():
            raise ValueError(f"State holds {gen_weights}/{disc_weights} generator/discriminator weights, but the "
                             f"networks have {self.generator.weight_count()}/{self.discriminator.weight_count()}.")
        self.gen_weights = gen_weights
        self.disc_weights = disc_weights
        # optimizers may already hold the existing buffer
        if self.arena.parameters.numel() != gen_weights + disc_weights:
            self.arena.allocate(gen_weights, disc_weights, self.dtype, self.device)
        self.arena.buffer.copy_(state["parameter"])
        self.share_parameters()
        # also restores buffers such as batch norm statistics
        self.generator.network.load_state_dict(state["generator"])
        self.discriminator.network.load_state_dict(state["discriminator"])
        self.is_reset = state["reset"]

        self.deterministic = True
        self.reset_deterministic()

    def save(self,
             path: str):
        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        torch.save(self.state_dict(), path)

    def load(self,
             path: str):
        """Restore a saved state. The flat buffer is reused if it has the right size, so existing optimizers stay
        valid."""
        self.load_state_dict(torch.load(path, map_location=self.device, weights_only=True))
