"""
Exploratory Data Analysis (EDA) Module - Phase 1
=================================================

Looks at how the next-day earnings move relates to the event attributes
before any model is fitted.

Functions:
    - plot_label_distribution: Histogram of next-day moves with normality test
    - plot_move_by_category: Box plots of the move per categorical value
    - plot_correlation_matrix: Correlation heatmap of numeric columns
    - label_correlations: Correlation of each numeric feature with the move
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_label_distribution(
    moves: pd.Series,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, Dict[str, float]]:
    """
    Histogram + KDE of the next-day move.

    Args:
        moves: Next-day moves in percent
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Tuple of (Figure, label statistics)
    """
    moves = moves.dropna().astype(float)

    fig, ax = plt.subplots(figsize=figsize)
    sns.histplot(moves, kde=len(moves) > 1, ax=ax, bins=40, alpha=0.7)

    mean_val = moves.mean()
    median_val = moves.median()
    ax.axvline(mean_val, color='red', linestyle='--', label=f'Mean: {mean_val:.2f}%')
    ax.axvline(median_val, color='green', linestyle='--', label=f'Median: {median_val:.2f}%')

    # normaltest needs at least 8 observations
    p_value = float('nan')
    if len(moves) >= 8:
        _, p_value = stats.normaltest(moves)
    normality = "Normal" if p_value > 0.05 else "Non-Normal"

    ax.set_xlabel('Next-day move (%)')
    ax.set_title(f'Post-Earnings Move ({normality}, p={p_value:.3f})',
                 fontsize=12, fontweight='bold')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Label distribution saved to {save_path}")

    statistics = {
        "count": int(len(moves)),
        "mean": float(mean_val),
        "median": float(median_val),
        "std": float(moves.std()),
        "mean_abs_move": float(moves.abs().mean()),
        "share_up": float((moves >= 0).mean()) if len(moves) else float('nan'),
        "skew": float(moves.skew()),
        "kurtosis": float(moves.kurtosis()),
        "normaltest_p": float(p_value)
    }

    return fig, statistics


def plot_move_by_category(
    df: pd.DataFrame,
    label_column: str,
    category_columns: List[str],
    max_categories: int = 15,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Box plots of the next-day move for each value of each categorical column.

    Args:
        df: Labelled earnings events
        label_column: Next-day move column
        category_columns: Columns to group by
        max_categories: Most frequent values kept per column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    n_cols = len(category_columns)
    n_rows = max((n_cols + 1) // 2, 1)

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for idx, col in enumerate(category_columns):
        ax = axes[idx]
        top = df[col].value_counts().index[:max_categories]
        subset = df[df[col].isin(top)]
        order = (
            subset.groupby(col)[label_column].median()
            .sort_values(ascending=False).index.tolist()
        )

        sns.boxplot(data=subset, x=col, y=label_column, order=order, ax=ax)
        ax.axhline(0, color='gray', linewidth=0.8)
        ax.set_title(f'Move by {col}', fontsize=10, fontweight='bold')
        ax.set_xlabel('')
        ax.set_ylabel('Next-day move (%)')
        ax.tick_params(axis='x', rotation=45)

    for idx in range(n_cols, len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Post-Earnings Move by Category', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Category box plots saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=len(corr_matrix) <= 12,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def label_correlations(
    df: pd.DataFrame,
    label_column: str,
    exclude: Optional[List[str]] = None,
    method: str = 'spearman'
) -> pd.Series:
    """
    Correlation of every numeric feature with the next-day move.

    Rank correlation is the default because moves are fat-tailed.

    Returns:
        Series indexed by feature, sorted by absolute correlation
    """
    exclude = set(exclude or []) | {label_column}
    numeric = df.select_dtypes(include=[np.number])
    features = [c for c in numeric.columns if c not in exclude]

    correlations = numeric[features].corrwith(numeric[label_column], method=method)
    correlations = correlations.dropna()
    return correlations.reindex(correlations.abs().sort_values(ascending=False).index)


def plot_label_correlations(
    correlations: pd.Series,
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    fig, ax = plt.subplots(figsize=figsize)

    colors = ['seagreen' if v > 0 else 'indianred' for v in correlations.values]
    ax.barh(correlations.index[::-1], correlations.values[::-1], color=colors[::-1], alpha=0.8)
    ax.axvline(0, color='k', linewidth=0.5)
    ax.set_xlabel('Correlation with next-day move')
    ax.set_title('Feature Correlation with Post-Earnings Move', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Label correlation plot saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    schema: Dict[str, Any],
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Earnings events (unlabelled rows are ignored)
        schema: Column roles from data_loader.get_schema
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    label = schema['label_column']
    history = df[df[label].notnull()]
    categories = [
        c for c in schema['nominal_columns'] + list(schema['ordinal_columns'])
        if c in history.columns
    ]

    report = {
        "data_shape": history.shape,
        "columns": list(history.columns),
        "figures": [],
        "label_statistics": {},
        "label_correlations": {},
        "correlation_matrix": None
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS (Phase 1)")
    logger.info("=" * 60)

    logger.info("Plotting next-day move distribution...")
    _, label_stats = plot_label_distribution(
        history[label],
        save_path=str(output_dir / "01_move_distribution.png")
    )
    report["figures"].append("01_move_distribution.png")
    report["label_statistics"] = label_stats

    if categories:
        logger.info("Plotting moves by category...")
        plot_move_by_category(
            history, label, categories,
            save_path=str(output_dir / "02_move_by_category.png")
        )
        report["figures"].append("02_move_by_category.png")

    logger.info("Computing correlation matrix...")
    numeric = history.drop(columns=schema['drop_columns'], errors='ignore')
    _, corr_matrix = plot_correlation_matrix(
        numeric,
        save_path=str(output_dir / "03_correlation_matrix.png")
    )
    report["figures"].append("03_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    correlations = label_correlations(history, label, exclude=schema['drop_columns'])
    report["label_correlations"] = correlations.to_dict()
    if not correlations.empty:
        plot_label_correlations(
            correlations,
            save_path=str(output_dir / "04_label_correlations.png")
        )
        report["figures"].append("04_label_correlations.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(correlations: Dict[str, float], threshold: float = 0.2) -> None:
    """
    Print features whose correlation with the next-day move is notable.

    Args:
        correlations: Feature -> correlation with the move
        threshold: Absolute correlation treated as notable
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    strong = {k: v for k, v in correlations.items() if abs(v) >= threshold}

    if strong:
        print(f"\nFeatures correlated with the move (|r| >= {threshold}):")
        for feature, value in sorted(strong.items(), key=lambda kv: abs(kv[1]), reverse=True):
            direction = "higher move" if value > 0 else "lower move"
            print(f"  • {feature}: {value:+.3f} ({direction})")
    else:
        print(f"\nNo numeric feature reaches |r| >= {threshold}")
        print("  - Any signal is likely non-linear or category-driven")

    print("=" * 50 + "\n")
