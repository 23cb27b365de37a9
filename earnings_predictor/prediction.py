"""
Prediction Module - Phase 5
============================

Forecasts the next-day move for upcoming earnings events.

Features:
    - Per-model and ensemble predictions for each event
    - Confidence intervals (based on hold-out RMSE)
    - Straddle screening on the predicted move size
    - Export predictions to CSV and a JSON report
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

import numpy as np
import pandas as pd
from scipy import stats

from .data_loader import split_labelled
from .evaluation import to_json_safe
from .model import EarningsEnsembleModel, train_model
from .preprocessing import EarningsPreprocessor, build_preprocessor

logger = logging.getLogger(__name__)

PREDICTION_COLUMN = 'predicted_move_pct'


def predict_events(
    model: EarningsEnsembleModel,
    preprocessor: EarningsPreprocessor,
    events: pd.DataFrame,
    id_columns: Optional[list] = None
) -> pd.DataFrame:
    """
    Predict the next-day move for each event.

    Args:
        model: Trained ensemble
        preprocessor: Preprocessor fitted on the same history as the model
        events: Upcoming events (label column may be absent or blank)
        id_columns: Identifier columns copied into the output (when present)

    Returns:
        DataFrame with identifiers, one column per model and predicted_move_pct
    """
    if events.empty:
        raise ValueError("No events to predict")

    X = preprocessor.transform(events)
    member_predictions = model.predict_by_model(X)

    id_columns = [c for c in (id_columns or []) if c in events.columns]
    frame = events[id_columns].reset_index(drop=True).copy()

    for name, values in member_predictions.items():
        frame[f'{name}_pct'] = values
    frame[PREDICTION_COLUMN] = model.predict(X)

    return frame


def calculate_confidence_intervals(
    predictions: np.ndarray,
    historical_rmse: float,
    confidence_level: float = 0.95
) -> Dict[str, np.ndarray]:
    """
    Symmetric intervals around each prediction from the hold-out RMSE.

    Args:
        predictions: Ensemble predictions
        historical_rmse: Ensemble RMSE from evaluation
        confidence_level: Two-sided confidence level (e.g. 0.95)

    Returns:
        Dictionary with lower_bound, upper_bound and margin_of_error arrays
    """
    if not 0 < confidence_level < 1:
        raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}")

    predictions = np.asarray(predictions, dtype=float)
    z_score = stats.norm.ppf(0.5 + confidence_level / 2)
    margin = z_score * float(historical_rmse)

    return {
        'lower_bound': predictions - margin,
        'upper_bound': predictions + margin,
        'margin_of_error': np.full_like(predictions, margin),
        'confidence_level': confidence_level
    }


def flag_straddle_candidates(predictions: np.ndarray, threshold: float) -> np.ndarray:
    """True where the predicted move is at least `threshold` percent either way."""
    return np.abs(np.asarray(predictions, dtype=float)) >= threshold


def annotate_predictions(
    frame: pd.DataFrame,
    historical_rmse: Optional[float] = None,
    confidence_level: float = 0.95,
    straddle_threshold: float = 5.0
) -> pd.DataFrame:
    """Add direction, interval and straddle columns to a predict_events frame."""
    frame = frame.copy()
    preds = frame[PREDICTION_COLUMN].to_numpy(dtype=float)

    frame['direction'] = np.where(preds >= 0, 'up', 'down')

    if historical_rmse is not None:
        intervals = calculate_confidence_intervals(preds, historical_rmse, confidence_level)
        frame['lower_bound'] = intervals['lower_bound']
        frame['upper_bound'] = intervals['upper_bound']

    frame['straddle_candidate'] = flag_straddle_candidates(preds, straddle_threshold)
    return frame


def export_predictions(
    frame: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export predictions to CSV file.

    Args:
        frame: Annotated predictions
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"earnings_predictions_{timestamp}.csv"
    else:
        filename = "earnings_predictions.csv"

    filepath = output_path / filename
    frame.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def generate_prediction_report(
    frame: pd.DataFrame,
    metrics: Optional[Dict[str, Any]] = None,
    confidence_level: float = 0.95,
    straddle_threshold: float = 5.0,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate a prediction report.

    Args:
        frame: Annotated predictions
        metrics: Hold-out evaluation metrics (optional)
        confidence_level: Confidence level used for the intervals
        straddle_threshold: Move size used for straddle screening
        output_path: Path to save the report (optional)

    Returns:
        Report dictionary
    """
    records = json.loads(frame.to_json(orient='records', date_format='iso'))

    report = {
        'generated_at': datetime.now().isoformat(),
        'confidence_level': confidence_level,
        'straddle_threshold': straddle_threshold,
        'predictions': records,
        'summary': {
            'n_events': int(len(frame)),
            'n_up': int((frame[PREDICTION_COLUMN] >= 0).sum()),
            'n_down': int((frame[PREDICTION_COLUMN] < 0).sum()),
            'n_straddle_candidates': int(frame.get('straddle_candidate', pd.Series(dtype=bool)).sum()),
            'mean_predicted_move': float(frame[PREDICTION_COLUMN].mean())
        }
    }

    if metrics and 'per_model' in metrics:
        report['historical_metrics'] = metrics['per_model']

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(to_json_safe(report), f, indent=2, allow_nan=False)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    history: pd.DataFrame,
    upcoming: Optional[pd.DataFrame],
    schema: Dict[str, Any],
    config: Dict[str, Any],
    metrics: Optional[Dict[str, Any]] = None,
    output_dir: str = "data/predictions/"
) -> Dict[str, Any]:
    """
    Execute the complete final prediction workflow.

    This function:
    1. Refits the preprocessor and the ensemble on 100% of the history
    2. Transforms the upcoming events
    3. Generates predictions
    4. Adds confidence intervals and straddle flags
    5. Exports results

    Args:
        history: Events table; unlabelled rows become upcoming events
        upcoming: Separate upcoming events (optional)
        schema: Column roles from data_loader.get_schema
        config: Full configuration dictionary
        metrics: Hold-out evaluation metrics
        output_dir: Directory for output files

    Returns:
        Dictionary containing predictions, file paths and the report
    """
    logger.info("=" * 60)
    logger.info("STARTING FINAL PREDICTION (Phase 5)")
    logger.info("=" * 60)

    label = schema['label_column']
    labelled, unlabelled = split_labelled(history, label)

    if upcoming is None or upcoming.empty:
        upcoming = unlabelled
    if upcoming.empty:
        raise ValueError(
            f"No upcoming events to predict: every row has a '{label}' value "
            f"and no separate events file was given"
        )

    pred_config = config.get('prediction', {}) or {}
    confidence_level = pred_config.get('confidence_level', 0.95)
    straddle_threshold = pred_config.get('straddle_threshold', 5.0)

    preprocessor = build_preprocessor(schema)
    X_full = preprocessor.fit_transform(labelled)
    y_full = preprocessor.extract_target(labelled)

    logger.info(f"Retraining ensemble on 100% of history ({len(X_full)} events)...")
    model = train_model(X_full, y_full, config)

    id_columns = [schema.get('ticker_column'), schema.get('date_column')]
    frame = predict_events(model, preprocessor, upcoming, id_columns=id_columns)

    historical_rmse = None
    if metrics and 'ensemble' in metrics.get('per_model', {}):
        historical_rmse = metrics['per_model']['ensemble']['rmse']

    frame = annotate_predictions(
        frame, historical_rmse, confidence_level, straddle_threshold
    )

    output_dir = Path(output_dir)
    csv_path = export_predictions(frame, str(output_dir))

    report_path = output_dir / "prediction_report.json"
    report = generate_prediction_report(
        frame, metrics, confidence_level, straddle_threshold,
        output_path=str(report_path)
    )

    result = {
        'predictions': frame,
        'model': model,
        'preprocessor': preprocessor,
        'ticker_column': schema.get('ticker_column'),
        'confidence_level': confidence_level,
        'csv_path': csv_path,
        'report_path': str(report_path),
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Events predicted: {len(frame)}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    frame = result['predictions']
    ticker_col = result.get('ticker_column')
    level = result.get('confidence_level', 0.95)
    has_intervals = 'lower_bound' in frame.columns

    print("\n" + "=" * 70)
    print("UPCOMING EARNINGS PREDICTIONS")
    print("=" * 70)

    print(f"\n{'Ticker':<10} {'Move (%)':<10} {f'{level:.0%} CI':<22} {'Straddle':<8}")
    print("-" * 70)

    for i, row in frame.iterrows():
        ticker = row[ticker_col] if ticker_col in frame.columns else f"#{i}"
        move = row[PREDICTION_COLUMN]
        if has_intervals:
            interval = f"[{row['lower_bound']:+.2f}, {row['upper_bound']:+.2f}]"
        else:
            interval = 'N/A'
        straddle = 'yes' if row.get('straddle_candidate', False) else 'no'
        print(f"{str(ticker):<10} {move:<+10.2f} {interval:<22} {straddle:<8}")

    print("-" * 70)
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Full report saved to: {result['report_path']}")

    if has_intervals:
        print("\nNote: Intervals are based on the ensemble's hold-out RMSE.")

    print("=" * 70 + "\n")
