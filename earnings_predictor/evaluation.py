"""
Model Evaluation Module - Phase 4
==================================

Scores each ensemble member and the averaged ensemble on the held-out
earnings events.

Features:
    - RMSE, MAE, R² and directional accuracy per model
    - Actual vs Predicted plots
    - Residual analysis
    - Model comparison chart
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score

logger = logging.getLogger(__name__)

ENSEMBLE_KEY = 'ensemble'


def to_json_safe(value: Any) -> Any:
    """Replace NaN and infinite floats with None so the result is strict JSON."""
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, float) and not np.isfinite(value):
        return None
    return value


def directional_accuracy(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Share of events where the predicted direction matches the realised one.

    A move of exactly zero counts as non-negative on both sides.
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if len(y_true) == 0:
        return float('nan')
    return float(np.mean((y_true >= 0) == (y_pred >= 0)))


def calculate_metrics(
    y_true: np.ndarray,
    predictions: Dict[str, np.ndarray]
) -> Dict[str, Any]:
    """
    Calculate evaluation metrics for every model.

    Args:
        y_true: Realised next-day moves of shape (n_samples,)
        predictions: Mapping of model name to predictions, including 'ensemble'

    Returns:
        Dictionary containing metrics per model and overall
    """
    y_true = np.asarray(y_true, dtype=float).ravel()

    metrics = {
        'per_model': {},
        'overall': {}
    }

    for name, y_pred in predictions.items():
        y_pred = np.asarray(y_pred, dtype=float).ravel()
        errors = y_true - y_pred

        # R² is undefined for fewer than two samples
        r2 = r2_score(y_true, y_pred) if len(y_true) > 1 else float('nan')

        metrics['per_model'][name] = {
            'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
            'mae': float(mean_absolute_error(y_true, y_pred)),
            'r2': float(r2),
            'directional_accuracy': directional_accuracy(y_true, y_pred),
            'mean_error': float(np.mean(errors)),
            'std_error': float(np.std(errors)),
            'max_error': float(np.max(np.abs(errors)))
        }

    best_model = min(metrics['per_model'], key=lambda m: metrics['per_model'][m]['rmse'])

    metrics['overall'] = {
        'best_model': best_model,
        'best_rmse': metrics['per_model'][best_model]['rmse'],
        'n_samples': int(len(y_true)),
        'n_models': int(len(predictions)),
        'actual_mean_abs_move': float(np.mean(np.abs(y_true))) if len(y_true) else float('nan')
    }

    if ENSEMBLE_KEY in metrics['per_model']:
        metrics['overall']['ensemble_rmse'] = metrics['per_model'][ENSEMBLE_KEY]['rmse']
        metrics['overall']['ensemble_r2'] = metrics['per_model'][ENSEMBLE_KEY]['r2']

    return metrics


def plot_actual_vs_predicted(
    y_true: np.ndarray,
    predictions: Dict[str, np.ndarray],
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create actual vs predicted scatter plots for each model.

    Args:
        y_true: Realised moves
        predictions: Mapping of model name to predictions
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    names = list(predictions)
    n_rows = (len(names) + 1) // 2
    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for i, name in enumerate(names):
        ax = axes[i]
        pred = np.asarray(predictions[name], dtype=float)

        ax.scatter(y_true, pred, alpha=0.5, s=20)

        min_val = min(np.min(y_true), np.min(pred))
        max_val = max(np.max(y_true), np.max(pred))
        ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=2, label='Perfect')
        ax.axhline(0, color='gray', linewidth=0.5)
        ax.axvline(0, color='gray', linewidth=0.5)

        rmse = np.sqrt(mean_squared_error(y_true, pred))
        hit = directional_accuracy(y_true, pred)

        ax.set_xlabel('Actual move (%)')
        ax.set_ylabel('Predicted move (%)')
        ax.set_title(f'{name}\nRMSE={rmse:.3f}, Direction hit={hit:.1%}',
                     fontsize=10, fontweight='bold')
        ax.legend(loc='upper left', fontsize=8)

    for idx in range(len(names), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Actual vs Predicted Next-Day Move', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs Predicted plot saved to {save_path}")

    return fig


def plot_residuals(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histogram of ensemble residuals.

    Args:
        y_true: Realised moves
        y_pred: Ensemble predictions
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    residuals = np.asarray(y_true, dtype=float) - np.asarray(y_pred, dtype=float)

    fig, ax = plt.subplots(figsize=figsize)
    sns.histplot(residuals, kde=len(residuals) > 1, ax=ax, bins=30, alpha=0.7)

    ax.axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
    ax.axvline(np.mean(residuals), color='green', linestyle='--',
               linewidth=2, label=f'Mean: {np.mean(residuals):.3f}')

    ax.set_xlabel('Residual (Actual - Predicted, %)')
    ax.set_ylabel('Frequency')
    ax.set_title(f'Ensemble Residuals (Std: {np.std(residuals):.3f})',
                 fontsize=12, fontweight='bold')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals plot saved to {save_path}")

    return fig


def plot_model_comparison(
    metrics: Dict[str, Any],
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart comparing RMSE, MAE and directional accuracy across models.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    names = list(metrics['per_model'])
    x = np.arange(len(names))
    colors = ['darkorange' if n == ENSEMBLE_KEY else 'steelblue' for n in names]

    fig, axes = plt.subplots(1, 3, figsize=figsize)

    panels = [
        ('rmse', 'RMSE (%)', 'Root Mean Squared Error'),
        ('mae', 'MAE (%)', 'Mean Absolute Error'),
        ('directional_accuracy', 'Hit rate', 'Directional Accuracy'),
    ]

    for ax, (key, ylabel, title) in zip(axes, panels):
        values = [metrics['per_model'][n][key] for n in names]
        ax.bar(x, values, 0.6, color=colors, alpha=0.8)
        ax.set_ylabel(ylabel)
        ax.set_title(title, fontweight='bold')
        ax.set_xticks(x)
        ax.set_xticklabels(names, rotation=45, ha='right')

    axes[2].axhline(0.5, color='gray', linestyle=':', label='Coin flip')
    axes[2].set_ylim([0, 1.05])
    axes[2].legend()

    plt.suptitle('Model Comparison', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Model comparison plot saved to {save_path}")

    return fig


def evaluate_model(
    y_true: np.ndarray,
    predictions: Dict[str, np.ndarray],
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run complete model evaluation and generate all reports.

    Args:
        y_true: Realised moves for the test events
        predictions: Mapping of model name to predictions, including 'ensemble'
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION (Phase 4)")
    logger.info("=" * 60)

    y_true = np.asarray(y_true, dtype=float).ravel()
    if len(y_true) == 0:
        raise ValueError("No test events to evaluate")

    logger.info("Calculating evaluation metrics...")
    metrics = calculate_metrics(y_true, predictions)

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(to_json_safe(metrics), f, indent=2, allow_nan=False)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []

    logger.info("Generating Actual vs Predicted plots...")
    plot_actual_vs_predicted(
        y_true, predictions,
        save_path=str(figures_dir / "eval_actual_vs_predicted.png")
    )
    figures.append("eval_actual_vs_predicted.png")

    if ENSEMBLE_KEY in predictions:
        logger.info("Generating residual analysis...")
        plot_residuals(
            y_true, predictions[ENSEMBLE_KEY],
            save_path=str(figures_dir / "eval_residuals.png")
        )
        figures.append("eval_residuals.png")

    logger.info("Generating model comparison...")
    plot_model_comparison(
        metrics,
        save_path=str(figures_dir / "eval_model_comparison.png")
    )
    figures.append("eval_model_comparison.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'metrics': metrics,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Best model: {metrics['overall']['best_model']}")
    logger.info(f"  Best RMSE: {metrics['overall']['best_rmse']:.4f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        metrics: Metrics dictionary from calculate_metrics
    """
    print("\n" + "=" * 70)
    print("MODEL EVALUATION REPORT")
    print("=" * 70)

    print(f"\n{'Model':<12} {'RMSE':<10} {'MAE':<10} {'R²':<10} {'Direction':<10}")
    print("-" * 70)

    for name, m in metrics['per_model'].items():
        print(f"{name:<12} {m['rmse']:<10.4f} {m['mae']:<10.4f} "
              f"{m['r2']:<10.4f} {m['directional_accuracy']:<10.1%}")

    overall = metrics['overall']
    print("-" * 70)
    print(f"\n  • Best model by RMSE: {overall['best_model']}")
    print(f"  • Test events: {overall['n_samples']}")
    print(f"  • Mean absolute realised move: {overall['actual_mean_abs_move']:.3f}%")

    ensemble = metrics['per_model'].get(ENSEMBLE_KEY)
    if ensemble:
        print("\nInterpretation:")
        if ensemble['directional_accuracy'] > 0.6:
            print("  ✓ Ensemble calls the direction better than a coin flip")
        else:
            print("  ⚠ Ensemble direction calls are close to a coin flip")
        if ensemble['rmse'] >= overall['actual_mean_abs_move']:
            print("  ⚠ Typical error is as large as the typical move - treat magnitudes with caution")

    print("=" * 70 + "\n")
