import os
from typing import Protocol


class Saveable(Protocol):
    def save(self, path: str): ...


class Checkpointer:
    def __init__(self,
                 model: Saveable,
                 directory: str,
                 checkpoint_name: str,
                 frequency: int):
        """Regularly saves model state during training.

        Parameters:
            model: Model to store checkpoints for. Anything with a save(path) method, e.g. a GAN.
            directory: Path to store checkpoints to. Will be created if non-existent.
            checkpoint_name: Base name for each checkpoint file. Epoch indices will be appended.
            frequency: Will create a checkpoint every this many epochs.
        """
        if frequency < 1:
            raise ValueError(f"frequency must be at least 1, got {frequency}.")
        self.model = model
        self.directory = directory
        self.checkpoint_name = checkpoint_name
        self.frequency = frequency
        if not os.path.exists(directory):
            os.makedirs(directory)

    def checkpoint_path(self,
                        suffix: str) -> str:
        return os.path.join(self.directory, f"{self.checkpoint_name}_{suffix}.pt")

    def maybe_checkpoint(self,
                         epoch_ind: int):
        """Create a new checkpoint if the trigger has been met.

        Parameters:
            epoch_ind: Self-explanatory.
        """
        # could check epoch_ind > 0, but maybe someone wants to evaluate the untrained model...?
        if not epoch_ind % self.frequency:
            self.model.save(self.checkpoint_path(f"{epoch_ind:04}"))

    def final_checkpoint(self):
        self.model.save(self.checkpoint_path("final"))
