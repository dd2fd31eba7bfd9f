from collections import defaultdict
from time import perf_counter

import numpy as np
import torch
from matplotlib import pyplot as plt
from torch.utils.tensorboard import SummaryWriter
from tqdm.auto import tqdm

from .model import GAN
from ..common import Checkpointer, count_parameters, plot_samples
from ..types import TabularBatchFloat


class GANTrainer:
    def __init__(self,
                 model: GAN,
                 optimizer: torch.optim.Optimizer,
                 n_epochs: int,
                 scheduler: torch.optim.lr_scheduler.LRScheduler | None = None,
                 shuffle: bool = True,
                 plot_every_n_epochs: int | None = None,
                 plot_figsize: tuple[int, int] = (6, 6),
                 plot_n_samples: int = 500,
                 checkpointer: Checkpointer | None = None,
                 verbose: bool = True,
                 use_tqdm: bool = False,
                 tensorboard_logdir: str | None = None,
                 tensorboard_figures: bool = False,
                 suppress_plots: bool = False):
        """Drives a GAN engine with a torch optimizer.

        The engine computes loss and gradient for all weights at once, so a single optimizer over the flat parameter
        buffer trains both networks. Since that buffer only exists after the engine has been reset, create the
        optimizer like this:

            gan.reset()
            optimizer = torch.optim.Adam([gan.parameter], lr=1e-4)

        Parameters:
            model: The GAN to train.
            optimizer: Must optimize exactly model.parameter.
            n_epochs: Number of full passes over the real training samples.
            scheduler: Optional learning rate scheduler, stepped after each epoch.
            shuffle: If True, shuffle the real samples before each epoch.
            plot_every_n_epochs: Every so often, plot real against generated samples to judge training progress
                                 visually. Pass None to disable plotting.
            plot_figsize: Figure size for these plots.
            plot_n_samples: How many real and generated samples to plot.
            checkpointer: If given, checkpoints will be stored at the desired frequency. In addition, we will save a
                          checkpoint with _final suffix at the end of training.
            verbose: If True, report on training progress throughout.
            use_tqdm: If True, and verbose is also True, supply progress bars.
            tensorboard_logdir: If given, will log training losses to the specified directory for visualization with
                                TensorBoard. Pass None to disable logging.
            tensorboard_figures: If True, also store the sample plots in tensorboard. Does nothing if
                                 tensorboard_logdir is not given.
            suppress_plots: If True, and tensorboard_figures is True, figures will *only* be stored in tensorboard.
        """
        if model.arena.is_empty():
            raise ValueError("The model has no parameters yet. Call model.reset() before creating the optimizer.")
        optimized = [param for group in optimizer.param_groups for param in group["params"]]
        if len(optimized) != 1 or optimized[0] is not model.parameter:
            raise ValueError("The optimizer must optimize exactly the model's flat parameter buffer (model.parameter).")

        self.model = model
        self.optimizer = optimizer
        self.n_epochs = n_epochs
        self.scheduler = scheduler
        self.shuffle = shuffle
        self.gradient = model.arena.zeros()

        self.plot_every_n_epochs = plot_every_n_epochs
        self.plot_figsize = plot_figsize
        self.plot_n_samples = plot_n_samples
        self.checkpointer = checkpointer
        self.verbose = verbose
        self.use_tqdm = use_tqdm

        if tensorboard_logdir is not None:
            self.writer = SummaryWriter(tensorboard_logdir)
        else:
            self.writer = None
        self.tensorboard_figures = tensorboard_figures
        self.suppress_plots = suppress_plots

    @property
    def n_batches(self) -> int:
        """Full minibatches per epoch. A remainder smaller than the batch size is skipped."""
        return self.model.num_functions // self.model.batch_size

    def train_model(self,
                    train_data: TabularBatchFloat,
                    real_label: float | None = None,
                    fake_label: float | None = None) -> defaultdict[str, np.ndarray]:
        """Load the training data and run all epochs.

        Parameters:
            train_data: Real samples, one per row. Needs at least batch_size of them.
            real_label, fake_label: See GAN.reset_data.

        Returns:
            Dictionary mapping metric names to numpy arrays of per-epoch averages.
        """
        self.model.reset_data(train_data, real_label, fake_label)
        if self.n_batches == 0:
            raise ValueError(f"Need at least batch_size={self.model.batch_size} training samples, "
                             f"got {self.model.num_functions}.")
        if self.verbose:
            print(f"Generator has {count_parameters(self.model.generator.network)} weights, discriminator has "
                  f"{count_parameters(self.model.discriminator.network)}.")
            print(f"Running {self.n_epochs} epochs at {self.n_batches} steps per epoch.")

        full_metrics = defaultdict(list)
        for epoch_ind in tqdm(iterable=range(self.n_epochs), desc="Overall progress", leave=True,
                              disable=not self.use_tqdm or not self.verbose):
            if self.plot_every_n_epochs is not None and not epoch_ind % self.plot_every_n_epochs:
                self.plot_examples(epoch_ind)
            epoch_train_metrics = self.train_epoch(epoch_ind)
            self.finish_epoch(full_metrics, epoch_train_metrics, epoch_ind)

        if self.checkpointer is not None:
            self.checkpointer.final_checkpoint()
        self.model.set_deterministic(True)
        for key in full_metrics:
            full_metrics[key] = np.array(full_metrics[key])
        return full_metrics

    def train_epoch(self,
                    epoch_ind: int) -> defaultdict[str, list[float]]:
        """One pass over the real samples.

        Returns:
            Dictionary mapping metric names to lists of per-step results.
        """
        if self.verbose:
            print(f"Starting epoch {epoch_ind + 1}...", end=" ")
        start_time = perf_counter()
        epoch_train_metrics = defaultdict(list)

        if self.shuffle:
            self.model.shuffle()
        batch_size = self.model.batch_size
        for batch_start in tqdm(range(0, self.n_batches * batch_size, batch_size), desc="Training", leave=False,
                                disable=not self.use_tqdm or not self.verbose):
            updates_generator = self.model.generator_update_due()
            epoch_train_metrics["loss"].append(self.train_step(batch_start))
            epoch_train_metrics["generator_updates"].append(float(updates_generator))

        time_taken = perf_counter() - start_time
        if self.verbose:
            print(f"\tTime taken: {time_taken:.4g} seconds")
        return epoch_train_metrics

    def train_step(self,
                   batch_start: int) -> float:
        """Compute loss and gradient for one minibatch and apply the optimizer."""
        loss = self.model.evaluate_with_gradient(self.model.parameter, batch_start, self.gradient,
                                                 self.model.batch_size)
        self.model.parameter.grad = self.gradient
        self.optimizer.step()
        if self.model.policy.clips_weights:
            self.model.clip_weights()
        return loss

    def finish_epoch(self,
                     full_run_metrics: dict[str, list[float]],
                     epoch_train_metrics: dict[str, list[float]],
                     epoch_ind: int):
        """Housekeeping after each epoch: scheduling, metric collection, Tensorboard summaries, checkpoints.

        Parameters:
            full_run_metrics: Should be the dictionary created at the start of train_model. This is modified in-place
                              inside this function.
            epoch_train_metrics: As returned from the last train_epoch call.
            epoch_ind: The index of the epoch.
        """
        if self.scheduler is not None:
            self.scheduler.step()

        for key in epoch_train_metrics:
            train_metric = np.mean(epoch_train_metrics[key])
            full_run_metrics[key].append(train_metric)
            if self.writer is not None:
                self.writer.add_scalar(key, train_metric, epoch_ind)

        if self.verbose:
            print("\tMetrics:")
            for key in full_run_metrics:
                print(f"\t\t{key}: {full_run_metrics[key][-1]:.6g}")
            if self.scheduler is not None:
                print(f"\tLR is now {self.scheduler.get_last_lr()[0]:.10g}")
            print()
        if self.writer is not None:
            self.writer.flush()
        if self.checkpointer is not None:
            self.checkpointer.maybe_checkpoint(epoch_ind)

    def plot_examples(self,
                      epoch_ind: int | None = None):
        """Scatter real samples against generated ones."""
        generated = self.model.generate(self.plot_n_samples)
        real = self.model.data.predictors[:self.model.num_functions][:self.plot_n_samples]
        title = "Generations" if epoch_ind is None else f"Generations before epoch {epoch_ind + 1}"
        figure = plot_samples(real, generated, figure_size=self.plot_figsize, title=title)

        show = not (self.writer is not None and self.tensorboard_figures and self.suppress_plots)
        if self.writer is not None and self.tensorboard_figures:
            self.writer.add_figure("generations", figure, epoch_ind, close=not show)
        if show:
            plt.show()
