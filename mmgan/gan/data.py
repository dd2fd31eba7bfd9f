import torch

from ..types import ScoreBatchFloat, TabularBatchFloat


class GANData:
    def __init__(self):
        """Fused training data shared with the discriminator.

        predictors has one row per real sample followed by batch_size rows reserved for generated samples, which are
        overwritten in every training step. responses holds the matching labels: real_label for real rows, fake_label
        for the reserved rows. The discriminator gets these very tensors (not copies) as its own predictors/responses,
        so its row indices refer to the same samples.
        """
        self.predictors = torch.empty(0)
        self.responses = torch.empty(0)
        self.num_functions = 0
        self.batch_size = 0

    def load(self,
             train_data: TabularBatchFloat,
             batch_size: int,
             real_label: float,
             fake_label: float,
             dtype: torch.dtype = torch.float32,
             device: torch.device | str = "cpu"):
        """Build predictors and responses for a new training set.

        Parameters:
            train_data: Real samples, one per row.
            batch_size: Number of generated rows to reserve.
            real_label, fake_label: Initial labels for real and reserved rows.
            dtype, device: Should match the network weights.
        """
        train_data = torch.as_tensor(train_data, dtype=dtype, device=device)
        if train_data.dim() == 1:
            train_data = train_data[:, None]
        self.num_functions = train_data.shape[0]
        self.batch_size = batch_size

        self.predictors = torch.empty(self.num_functions + batch_size, *train_data.shape[1:], dtype=dtype,
                                      device=device)
        self.predictors[:self.num_functions] = train_data
        self.predictors[self.num_functions:] = 0.

        self.responses = torch.full((self.num_functions + batch_size, 1), real_label, dtype=dtype, device=device)
        self.responses[self.num_functions:] = fake_label

    @property
    def feature_shape(self) -> tuple[int, ...]:
        return tuple(self.predictors.shape[1:])

    def real_slice(self,
                   index: int) -> tuple[TabularBatchFloat, ScoreBatchFloat]:
        """Views of the real minibatch starting at row index, plus its responses."""
        return (self.predictors[index:index + self.batch_size],
                self.responses[index:index + self.batch_size])

    def generated_slice(self) -> tuple[TabularBatchFloat, ScoreBatchFloat]:
        return (self.predictors[self.num_functions:self.num_functions + self.batch_size],
                self.responses[self.num_functions:self.num_functions + self.batch_size])

    @torch.no_grad()
    def write_generated(self,
                        samples: TabularBatchFloat):
        self.predictors[self.num_functions:self.num_functions + self.batch_size] = samples

    def label_generated(self,
                        label: float):
        self.responses[self.num_functions:self.num_functions + self.batch_size] = label

    def shuffle(self):
        """Randomly reorder the real rows. The reserved rows stay where they are."""
        ordering = torch.randperm(self.num_functions, device=self.predictors.device)
        self.predictors[:self.num_functions] = self.predictors[:self.num_functions][ordering]
