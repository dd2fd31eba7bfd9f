"""Tests for mmgan/gan/trainer.py and the checkpointing in mmgan/common/training.py."""

import os

import numpy as np
import pytest
import torch

from conftest import BATCH_SIZE, NOISE_DIM
from mmgan.common import Checkpointer, plot_learning_curves
from mmgan.gan import GANTrainer


@pytest.fixture
def quiet_trainer(make_gan):
    """Factory for trainers with an Adam optimizer over a freshly reset GAN. No printing."""
    def factory(n_epochs=2, gan_kwargs=None, **kwargs):
        gan = make_gan(**(gan_kwargs or {}))
        gan.reset()
        optimizer = torch.optim.Adam([gan.parameter], lr=1e-3)
        return GANTrainer(gan, optimizer, n_epochs, verbose=False, **kwargs)

    return factory


class TestTrainerSetup:

    def test_requires_reset_model(self, make_gan):
        gan = make_gan()
        with pytest.raises(ValueError, match="reset"):
            GANTrainer(gan, torch.optim.SGD([torch.zeros(1, requires_grad=True)], lr=0.1), 1)

    def test_optimizer_must_own_buffer(self, make_gan):
        gan = make_gan()
        gan.reset()
        other = torch.zeros(gan.parameter.numel(), requires_grad=True)
        with pytest.raises(ValueError, match="flat parameter buffer"):
            GANTrainer(gan, torch.optim.SGD([other], lr=0.1), 1)
        with pytest.raises(ValueError, match="flat parameter buffer"):
            GANTrainer(gan, torch.optim.SGD(list(gan.generator.network.parameters()), lr=0.1), 1)

    def test_too_few_samples_raise(self, quiet_trainer):
        trainer = quiet_trainer()
        with pytest.raises(ValueError, match="training samples"):
            trainer.train_model(torch.randn(BATCH_SIZE - 1, 2))


class TestTraining:

    def test_metrics_per_epoch(self, quiet_trainer, real_data):
        trainer = quiet_trainer(n_epochs=3)
        metrics = trainer.train_model(real_data)
        assert set(metrics) == {"loss", "generator_updates"}
        for values in metrics.values():
            assert isinstance(values, np.ndarray)
            assert values.shape == (3,)
        assert np.all(np.isfinite(metrics["loss"]))
        # 10 steps per epoch, generator updated in every other one
        assert metrics["generator_updates"][0] == pytest.approx(0.5)

    def test_gradient_buffer_matches_arena(self, quiet_trainer):
        trainer = quiet_trainer()
        assert trainer.gradient.shape == trainer.model.parameter.shape
        assert trainer.gradient.dtype == trainer.model.parameter.dtype
        assert not trainer.gradient.requires_grad

    def test_full_batches_only(self, quiet_trainer):
        trainer = quiet_trainer(n_epochs=1)
        trainer.train_model(torch.randn(35, 2))
        assert trainer.n_batches == 3
        assert trainer.model.current_batch == 3

    def test_training_changes_both_networks(self, quiet_trainer, real_data):
        trainer = quiet_trainer(n_epochs=1)
        before = trainer.model.arena.buffer.clone()
        trainer.train_model(real_data)
        after = trainer.model.arena.buffer
        gen_weights = trainer.model.gen_weights
        assert not torch.equal(after[:gen_weights], before[:gen_weights])
        assert not torch.equal(after[gen_weights:], before[gen_weights:])
        assert trainer.model.deterministic

    def test_wgan_weights_stay_clipped(self, quiet_trainer, real_data):
        trainer = quiet_trainer(n_epochs=1, gan_kwargs={"policy": "wgan", "clipping_parameter": 0.02})
        trainer.train_model(real_data)
        assert trainer.model.arena.discriminator_view().abs().max() <= 0.02

    def test_scheduler_steps_per_epoch(self, make_gan, real_data):
        gan = make_gan()
        gan.reset()
        optimizer = torch.optim.SGD([gan.parameter], lr=0.1)
        scheduler = torch.optim.lr_scheduler.StepLR(optimizer, step_size=1, gamma=0.5)
        trainer = GANTrainer(gan, optimizer, 2, scheduler=scheduler, verbose=False)
        trainer.train_model(real_data)
        assert scheduler.get_last_lr()[0] == pytest.approx(0.025)

    def test_verbose_output(self, quiet_trainer, real_data, capsys):
        trainer = quiet_trainer(n_epochs=1)
        trainer.verbose = True
        trainer.train_model(real_data)
        captured = capsys.readouterr().out
        assert "Starting epoch 1" in captured
        assert "loss" in captured


class TestLoggingAndCheckpoints:

    def test_checkpoints_written(self, quiet_trainer, real_data, tmp_path):
        trainer = quiet_trainer(n_epochs=2)
        trainer.checkpointer = Checkpointer(trainer.model, str(tmp_path / "checkpoints"), "toy", frequency=1)
        trainer.train_model(real_data)
        files = sorted(os.listdir(tmp_path / "checkpoints"))
        assert files == ["toy_0000.pt", "toy_0001.pt", "toy_final.pt"]

    def test_final_checkpoint_restores_model(self, quiet_trainer, make_gan, real_data, tmp_path):
        trainer = quiet_trainer(n_epochs=1)
        trainer.checkpointer = Checkpointer(trainer.model, str(tmp_path), "toy", frequency=5)
        trainer.train_model(real_data)
        restored = make_gan()
        restored.load(trainer.checkpointer.checkpoint_path("final"))
        noise = torch.randn(4, NOISE_DIM)
        assert torch.allclose(restored.predict(noise), trainer.model.predict(noise))

    def test_training_resumes_after_load(self, quiet_trainer, make_gan, real_data, tmp_path):
        """A trainer built before loading a checkpoint still trains the loaded weights."""
        source = make_gan()
        source.reset_data(real_data)
        path = str(tmp_path / "source.pt")
        source.save(path)

        trainer = quiet_trainer(n_epochs=1)
        parameter = trainer.model.parameter
        trainer.model.load(path)
        assert trainer.model.parameter is parameter
        assert torch.equal(trainer.model.arena.buffer, source.arena.buffer)

        before = trainer.model.arena.buffer.clone()
        trainer.train_model(real_data)
        assert not torch.equal(trainer.model.arena.buffer, before)

    def test_invalid_frequency_raises(self, gan, tmp_path):
        with pytest.raises(ValueError):
            Checkpointer(gan, str(tmp_path), "toy", frequency=0)

    def test_tensorboard_logging(self, quiet_trainer, real_data, tmp_path):
        logdir = tmp_path / "runs"
        trainer = quiet_trainer(n_epochs=1, tensorboard_logdir=str(logdir))
        trainer.train_model(real_data)
        trainer.writer.close()
        assert any(name.startswith("events.out.tfevents") for name in os.listdir(logdir))

    def test_plotting(self, quiet_trainer, real_data, tmp_path):
        trainer = quiet_trainer(n_epochs=2, plot_every_n_epochs=1, plot_n_samples=20,
                                tensorboard_logdir=str(tmp_path), tensorboard_figures=True, suppress_plots=True)
        metrics = trainer.train_model(real_data)
        plot_learning_curves(metrics, ["loss"])
