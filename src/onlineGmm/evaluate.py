"""
Evaluation and visualization utilities for the online mixture regressor.

Key functions:
- run_stream: feed a stream through a model, recording a per-step trace
- compute_metrics: regression metrics on the prequential predictions
- make_plots: error/cluster-count traces and component ellipses
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib import pyplot as plt
from matplotlib.patches import Ellipse
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from .data import iter_observations
from .model import GaussianMixtureModel


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def run_stream(
    model: GaussianMixtureModel,
    df: pd.DataFrame,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """
    Feed every row of df through model.add_value.

    Predictions are recorded before each update (prequential evaluation),
    so every row is scored on data the model has not yet seen.

    Returns:
        Trace DataFrame with columns step, pred_a, pred_b, out_a, out_b,
        max_error, best_distance, num_clusters
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    rows = []
    for step, (observation, value) in enumerate(iter_observations(df)):
        output = model.add_value(observation, value)
        if output is None:
            continue
        rows.append({
            "step": step,
            "pred_a": float(output[0]),
            "pred_b": float(output[1]),
            "out_a": float(value[0]),
            "out_b": float(value[1]),
            "max_error": float(model.max_error),
            "best_distance": float(model.best_distance),
            "num_clusters": int(model.num_clusters),
        })

    trace = pd.DataFrame(rows)
    logger.info(
        "Ran %d observations through %s GMM, ending with %d clusters",
        len(trace), model.name, model.num_clusters,
    )
    return trace


def compute_metrics(
    trace: pd.DataFrame,
    warmup: int = 0,
    logger: Optional[logging.Logger] = None,
) -> Dict:
    """
    Compute regression metrics on the trace after the first `warmup` steps.

    Args:
        trace: Output of run_stream
        warmup: Number of leading steps excluded from error metrics
        logger: Optional logger

    Returns:
        metrics dict
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if trace.empty:
        raise ValueError("Cannot compute metrics on an empty trace")

    scored = trace.iloc[warmup:] if len(trace) > warmup else trace

    metrics = {
        "n_steps": int(len(trace)),
        "n_scored": int(len(scored)),
        "mean_max_error": float(scored["max_error"].mean()),
        "final_num_clusters": int(trace["num_clusters"].iloc[-1]),
        "peak_num_clusters": int(trace["num_clusters"].max()),
    }

    for axis in ("a", "b"):
        y_true = scored[f"out_{axis}"].to_numpy()
        y_pred = scored[f"pred_{axis}"].to_numpy()
        metrics[f"mae_{axis}"] = float(mean_absolute_error(y_true, y_pred))
        metrics[f"rmse_{axis}"] = float(np.sqrt(mean_squared_error(y_true, y_pred)))
        metrics[f"r2_{axis}"] = float(r2_score(y_true, y_pred)) if len(scored) > 1 else float("nan")

    logger.info(
        "MAE a=%.4f b=%.4f | R2 a=%.3f b=%.3f | clusters final=%d peak=%d",
        metrics["mae_a"], metrics["mae_b"], metrics["r2_a"], metrics["r2_b"],
        metrics["final_num_clusters"], metrics["peak_num_clusters"],
    )
    return metrics


def _covariance_ellipse(mean: np.ndarray, cov: np.ndarray, n_std: float, **kwargs) -> Ellipse:
    eigvals, eigvecs = np.linalg.eigh(cov)
    eigvals = np.clip(eigvals, 0.0, None)
    angle = float(np.degrees(np.arctan2(eigvecs[1, 1], eigvecs[0, 1])))
    width, height = 2 * n_std * np.sqrt(eigvals[::-1])
    return Ellipse(xy=mean, width=width, height=height, angle=angle, **kwargs)


def make_plots(
    trace: pd.DataFrame,
    model: GaussianMixtureModel,
    df: Optional[pd.DataFrame] = None,
    reports_dir: str = "reports/online_gmm",
    logger: Optional[logging.Logger] = None,
) -> Dict:
    """
    Generate a set of plots for the report.

    Args:
        trace: Output of run_stream
        model: Model after the run (for the component ellipses)
        df: Optional source stream for the input-space scatter
        reports_dir: Where to write images
        logger: Optional logger

    Returns:
        dict of written figure paths
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    out = Path(reports_dir)
    _ensure_dir(out)
    written = {}

    # 1) Max relative error over the stream
    try:
        plt.figure(figsize=(10, 4))
        plt.plot(trace["step"], trace["max_error"], lw=0.6, alpha=0.5, label="max error")
        plt.plot(trace["step"], trace["max_error"].rolling(50, min_periods=1).mean(), label="rolling mean (50)")
        plt.xlabel("step")
        plt.ylabel("range-normalized error")
        plt.title(f"{model.name}: prediction error")
        plt.legend()
        path = out / "max_error_trace.png"
        plt.tight_layout(); plt.savefig(path, dpi=150); plt.close()
        written["max_error"] = str(path)
    except Exception as exc:
        logger.warning("Failed to plot error trace: %s", exc)

    # 2) Live cluster count
    try:
        plt.figure(figsize=(10, 3))
        plt.step(trace["step"], trace["num_clusters"], where="post")
        plt.xlabel("step")
        plt.ylabel("clusters")
        plt.title(f"{model.name}: live clusters")
        path = out / "num_clusters_trace.png"
        plt.tight_layout(); plt.savefig(path, dpi=150); plt.close()
        written["num_clusters"] = str(path)
    except Exception as exc:
        logger.warning("Failed to plot cluster count: %s", exc)

    # 3) Input space with 2-sigma component ellipses
    try:
        fig, ax = plt.subplots(figsize=(8, 8))
        if df is not None and not df.empty:
            sns.scatterplot(data=df, x="density", y="thresh", hue="label", s=8, alpha=0.4, palette="tab10", ax=ax)
        for cluster in model.clusters:
            ax.add_patch(_covariance_ellipse(
                cluster.gaussian_in.mean, cluster.gaussian_in.covariance,
                model.config.valid_cluster_std_dev, fill=False, lw=1.5, ec="#f58518",
            ))
            ax.plot(*cluster.gaussian_in.mean, marker="x", c="#f58518")
        ax.set_xlabel("density")
        ax.set_ylabel("thresh")
        ax.set_title(f"{model.name}: components ({model.num_clusters})")
        path = out / "components.png"
        fig.tight_layout(); fig.savefig(path, dpi=150); plt.close(fig)
        written["components"] = str(path)
    except Exception as exc:
        logger.warning("Failed to plot components: %s", exc)

    return written
