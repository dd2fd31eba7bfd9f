import numpy as np
import scipy.linalg
import torch

from ..gan import GAN
from ..types import CovarianceArray, SampleArray, TabularBatchFloat


def frechet_distance(p: SampleArray | TabularBatchFloat,
                     q: SampleArray | TabularBatchFloat) -> float:
    """Fréchet distance between two sample sets, one sample per row.

    Computed as ||mean(p) - mean(q)|| + trace(Cov(p) + Cov(q) - 2 sqrtm(Cov(p) Cov(q)^T)). Note that the mean term is
    the plain Euclidean norm, not its square. Usually p are generated samples and q real ones, but the distance is
    symmetric anyway.
    """
    p = _as_array(p)
    q = _as_array(q)
    mean_term = np.linalg.norm(p.mean(axis=0) - q.mean(axis=0), 2)
    sigma_p = np.atleast_2d(np.cov(p, rowvar=False))
    sigma_q = np.atleast_2d(np.cov(q, rowvar=False))

    covmean = _sqrtm_product(sigma_p, sigma_q)
    covariance_term = np.trace(sigma_p) + np.trace(sigma_q) - 2 * np.trace(covmean)
    return float(mean_term + covariance_term)


def _sqrtm_product(sigma_p: CovarianceArray,
                   sigma_q: CovarianceArray) -> CovarianceArray:
    """Principal square root of sigma_p @ sigma_q.T, with the safeguards from
    https://github.com/bioinf-jku/TTUR/blob/master/fid.py"""
    eps = 1e-6
    covmean = scipy.linalg.sqrtm(sigma_p @ sigma_q.T)
    # product might be almost singular
    if not np.isfinite(covmean).all():
        print(f"Frechet distance calculation produces singular product; adding {eps} to diagonal of cov estimates")
        offset = np.eye(sigma_p.shape[0]) * eps
        covmean = scipy.linalg.sqrtm((sigma_p + offset) @ (sigma_q + offset).T)
    # numerical error might give slight imaginary component
    if np.iscomplexobj(covmean):
        if not np.allclose(np.diagonal(covmean).imag, 0, atol=1e-3):
            m = np.max(np.abs(covmean.imag))
            raise ValueError(f"Imaginary component {m}")
        covmean = covmean.real
    return covmean


def _as_array(samples: SampleArray | TabularBatchFloat) -> SampleArray:
    # float64 for precision
    if isinstance(samples, torch.Tensor):
        samples = samples.detach().cpu().numpy()
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim == 1:
        samples = samples[:, None]
    return samples.reshape(samples.shape[0], -1)


def gan_frechet_distance(gan: GAN,
                         real_data: SampleArray | TabularBatchFloat,
                         n_samples: int | None = None) -> float:
    """Fréchet distance between samples from a GAN's generator and real data.

    Parameters:
        gan: Trained GAN.
        real_data: Real samples, one per row.
        n_samples: How many samples to generate. If not given, generate as many as there are real samples.
    """
    real_data = _as_array(real_data)
    if n_samples is None:
        n_samples = real_data.shape[0]
    generated = gan.generate(n_samples)
    return frechet_distance(generated, real_data)
