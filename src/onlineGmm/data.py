"""
Data helpers for the online mixture regressor.

Responsibilities:
- Load an observation stream from CSV or Parquet
- Generate synthetic labelled streams with known local linear maps
- Turn stream rows into (Observation, value) pairs
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .cluster import Observation

INPUT_COLS = ["density", "thresh"]
OUTPUT_COLS = ["out_a", "out_b"]
REQUIRED_COLS = ["label"] + INPUT_COLS + OUTPUT_COLS

DEFAULT_CENTERS: List[Tuple[float, float]] = [(0.0, 0.0), (6.0, 2.0), (2.0, 7.0)]


def load_observations(
    path: str,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """
    Load an observation stream, preserving row order.

    Args:
        path: CSV or Parquet file with label, density, thresh, out_a, out_b
        logger: Optional logger

    Returns:
        DataFrame with the required columns, non-finite rows dropped
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Observation file not found: {path}")

    if file_path.suffix == ".parquet":
        df = pd.read_parquet(file_path)
    else:
        df = pd.read_csv(file_path)

    missing = [c for c in REQUIRED_COLS if c not in df.columns]
    if missing:
        raise ValueError(f"Observation file {path} is missing columns: {missing}")

    df = df[REQUIRED_COLS].copy()
    numeric = df.apply(pd.to_numeric, errors="coerce")

    finite_mask = np.isfinite(numeric.to_numpy(dtype=np.float64)).all(axis=1)
    dropped = int((~finite_mask).sum())
    if dropped > 0:
        logger.warning("Dropped %d rows with NaN/Inf in %s", dropped, path)

    df = numeric.loc[finite_mask].reset_index(drop=True)
    df["label"] = df["label"].astype(int)

    logger.info("Loaded %d observations from %s", len(df), path)
    return df


def generate_synthetic_stream(
    n_samples: int = 2000,
    centers: Optional[Sequence[Tuple[float, float]]] = None,
    noise: float = 0.3,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Draw a stream around a few input centers, one label per center.

    Each center gets its own random 2x2 linear map, so the output is a
    piecewise-linear function of the input that a mixture of local
    regressors can follow.
    """
    rng = np.random.default_rng(seed)
    centers = np.asarray(centers if centers is not None else DEFAULT_CENTERS, dtype=np.float64)

    maps = rng.uniform(-1.0, 1.0, (len(centers), 2, 2))
    offsets = rng.uniform(-5.0, 5.0, (len(centers), 2))

    labels = rng.integers(0, len(centers), n_samples)
    inputs = centers[labels] + rng.normal(0.0, noise, (n_samples, 2))
    deviations = inputs - centers[labels]
    outputs = offsets[labels] + np.einsum("nij,nj->ni", maps[labels], deviations)

    return pd.DataFrame({
        "label": labels.astype(int),
        "density": inputs[:, 0],
        "thresh": inputs[:, 1],
        "out_a": outputs[:, 0],
        "out_b": outputs[:, 1],
    })


def iter_observations(df: pd.DataFrame) -> Iterator[Tuple[Observation, np.ndarray]]:
    """Yield (Observation, value) pairs in row order."""
    for row in df[REQUIRED_COLS].itertuples(index=False):
        observation = Observation(label=int(row.label), density=float(row.density), thresh=float(row.thresh))
        yield observation, np.array([row.out_a, row.out_b], dtype=np.float64)
