import jax.numpy as jnp
from jax import Array
import matplotlib.pyplot as plt
import seaborn as sns
import numpy as np
import pandas as pd


def grad_error(est_grads: Array, true_scores: Array) -> Array:
    """
    Mean squared error of estimated log-density gradients, averaged over points.

    Args:
        est_grads: Estimated gradients of shape ``(n, d)``.
        true_scores: Exact scores of shape ``(n, d)``.
    """
    if est_grads.shape != true_scores.shape:
        raise ValueError(
            f"shape mismatch: {est_grads.shape} vs {true_scores.shape}"
        )
    return jnp.mean(jnp.sum((est_grads - true_scores) ** 2, axis=-1))


def make_main_plot(
    result_df: pd.DataFrame,
    metric: str = "grad_error",
    ncols: int = 2,
    fig_mul: float = 3,
    cbar_label: str = "Gradient error",
    log_metric: bool = True,
    title: str | None = None,
):
    """
    One heat-map per basis mode of ``metric`` over (ln sigma, number of basis components).

    Cells show the mean over replicates; the annotation is the standard error.

    Args:
        result_df: Results with columns ``basis_mode``, ``sigma``, ``num_basis`` and ``metric``.
        metric: Column to plot.
        ncols: Number of subplot columns.
        fig_mul: Size of one subplot in inches.
        cbar_label: Colour bar label.
        log_metric: Plot ``log10`` of the metric.
        title: Optional figure title.

    Returns:
        The figure and its axes.
    """
    df = result_df.copy()
    df["ln_sigma"] = np.round(np.log(df["sigma"]), 2)
    if log_metric:
        df[metric] = np.log10(df[metric])

    keys = ["basis_mode", "ln_sigma", "num_basis"]
    df_mean = df.groupby(keys, as_index=False)[metric].mean()
    df_se = df.groupby(keys, as_index=False)[metric].sem()

    modes = sorted(df_mean["basis_mode"].unique())
    vmin, vmax = df_mean[metric].min(), df_mean[metric].max()

    n = len(modes)
    cols = min(ncols, n)
    rows = int(np.ceil(n / cols))
    fig, axes = plt.subplots(
        rows, cols, figsize=(fig_mul * cols, fig_mul * rows), squeeze=False
    )

    for k, mode in enumerate(modes):
        ax = axes.flat[k]
        heat = (
            df_mean[df_mean["basis_mode"] == mode]
            .pivot(index="num_basis", columns="ln_sigma", values=metric)
            .sort_index()
        )
        heat_se = (
            df_se[df_se["basis_mode"] == mode]
            .pivot(index="num_basis", columns="ln_sigma", values=metric)
            .sort_index()
        )

        sns.heatmap(
            heat,
            ax=ax,
            cmap="viridis",
            vmin=vmin,
            vmax=vmax,
            cbar=False,
        )

        se_data = heat_se.values
        for i in range(se_data.shape[0]):
            for j in range(se_data.shape[1]):
                if np.isfinite(se_data[i, j]):
                    ax.text(
                        j + 0.5,
                        i + 0.5,
                        f"{se_data[i, j]:.2f}",
                        ha="center",
                        va="center",
                        color="white",
                    )

        ax.set_title(mode, fontsize=12)
        ax.set_xlabel(r"$\ln \sigma$", fontsize=10)
        ax.set_ylabel(r"$m$", fontsize=10)
        ax.invert_yaxis()

    for ax in axes.flat[n:]:
        ax.axis("off")

    plt.tight_layout()

    fig.subplots_adjust(right=0.88)
    cbar_ax = fig.add_axes([0.91, 0.2, 0.02, 0.6])
    norm = plt.Normalize(vmin=vmin, vmax=vmax)
    sm = plt.cm.ScalarMappable(cmap="viridis", norm=norm)
    sm.set_array([])
    fig.colorbar(sm, cax=cbar_ax, label=cbar_label)

    if title is not None:
        fig.suptitle(title, fontsize=14)

    return fig, axes
