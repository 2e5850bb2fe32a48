"""
Figures for the neighborhood model comparison.

Each function draws into a new matplotlib Figure and returns it; the caller
decides whether to show it or write it to disk.
"""

from pathlib import Path
from typing import Dict

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from geohousing import config


def plot_price_by_neighborhood(df: pd.DataFrame, target_col: str = config.TARGET_COLUMN):
    """Boxplot of sale price per neighborhood, ordered by median price."""
    key = config.NEIGHBORHOOD_KEY_COLUMN
    order = df.groupby(key)[target_col].median().sort_values().index.tolist()

    fig, ax = plt.subplots(figsize=(14, 6))
    sns.boxplot(data=df, x=key, y=target_col, order=order, ax=ax, color='lightsteelblue')
    ax.set_xlabel("Neighborhood")
    ax.set_ylabel(target_col)
    ax.set_title("Sale price by neighborhood")
    ax.tick_params(axis='x', rotation=90)
    fig.tight_layout()
    return fig


def plot_neighborhood_map(coordinates: pd.DataFrame, housing: pd.DataFrame = None,
                          target_col: str = config.TARGET_COLUMN):
    """
    Neighborhood centroids in planar coordinates.

    When `housing` is given, markers are coloured by median sale price.
    """
    fig, ax = plt.subplots(figsize=(9, 9))

    if housing is not None:
        medians = housing.groupby(config.NEIGHBORHOOD_KEY_COLUMN)[target_col].median()
        colour = coordinates[config.NEIGHBORHOOD_KEY_COLUMN].map(medians)
        points = ax.scatter(coordinates['easting'], coordinates['northing'], c=colour, cmap='viridis', s=80)
        fig.colorbar(points, ax=ax, label=f"Median {target_col}")
    else:
        ax.scatter(coordinates['easting'], coordinates['northing'], s=80)

    for row in coordinates.itertuples(index=False):
        ax.annotate(row.abbreviation, (row.easting, row.northing),
                    xytext=(4, 4), textcoords='offset points', fontsize=8)

    ax.set_xlabel("Easting (m)")
    ax.set_ylabel("Northing (m)")
    ax.set_title("Geocoded neighborhood centroids")
    ax.set_aspect('equal', adjustable='datalim')
    fig.tight_layout()
    return fig


def plot_cv_curves(cv_results: Dict[str, Dict]):
    """Mean validation RMSE per boosting round, one line per feature set."""
    fig, ax = plt.subplots(figsize=(9, 5))
    for name, cv in cv_results.items():
        curve = cv['curve']
        ax.plot(curve['iteration'], curve['test-RMSE-mean'], label=name)
        ax.fill_between(
            curve['iteration'],
            curve['test-RMSE-mean'] - curve['test-RMSE-std'],
            curve['test-RMSE-mean'] + curve['test-RMSE-std'],
            alpha=0.2,
        )
    ax.set_xlabel("Boosting round")
    ax.set_ylabel("Validation RMSE")
    ax.set_title("Cross-validation error")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_residuals(residuals: Dict[str, pd.DataFrame]):
    """Residual vs. predicted scatter, one panel per feature set."""
    n = len(residuals)
    fig, axes = plt.subplots(1, n, figsize=(7 * n, 5), sharey=True, squeeze=False)

    for ax, (name, res) in zip(axes[0], residuals.items()):
        ax.scatter(res['predicted'], res['residual'], alpha=0.5, s=12)
        ax.axhline(0, color='black', linewidth=1)
        ax.set_xlabel("Predicted")
        ax.set_title(f"{name} residuals")
    axes[0][0].set_ylabel("Actual - predicted")
    fig.tight_layout()
    return fig


def save_figures(figures: Dict[str, "plt.Figure"], output_dir) -> None:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    for name, fig in figures.items():
        fig.savefig(output_dir / f"{name}.png", dpi=120)
        plt.close(fig)
    print(f"Saved {len(figures)} figures to {output_dir}")
