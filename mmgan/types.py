"""This module uses jaxtyping to add various more specific tensor types.

All sample matrices are batch-first, i.e. each row is one sample.
"""
from collections.abc import Callable
from typing import TypeAlias

import numpy as np
from jaxtyping import Float
from torch import Tensor, nn


TabularBatchFloat: TypeAlias = Float[Tensor, "batch c"]
NoiseBatchFloat: TypeAlias = Float[Tensor, "batch noise"]
ScoreBatchFloat: TypeAlias = Float[Tensor, "batch 1"]
ScalarFloat: TypeAlias = Float[Tensor, ""]

# one flat buffer holding the weights (or gradients) of both sub-models
FlatFloat: TypeAlias = Float[Tensor, "n_weights"]

SampleArray: TypeAlias = Float[np.ndarray, "samples dims"]
CovarianceArray: TypeAlias = Float[np.ndarray, "dims dims"]

LossFunction: TypeAlias = Callable[[ScoreBatchFloat, ScoreBatchFloat], ScalarFloat]
NoiseFunction: TypeAlias = Callable[[], float]
InitializationRule: TypeAlias = Callable[[nn.Module, FlatFloat, int], None]
