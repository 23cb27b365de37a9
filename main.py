#!/usr/bin/env python3
"""
Earnings Move Predictor - Main Pipeline
========================================

Orchestrates the pipeline that predicts next-day stock moves after
earnings announcements.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Preprocessing - Column encoding and train/test split
    3. Training - XGBoost + LightGBM + CatBoost ensemble
    4. Evaluation - Hold-out performance per model
    5. Prediction - Forecasts for upcoming earnings events

Usage:
    # Run complete pipeline
    python main.py --data data/raw/earnings.xlsx

    # Run specific phase
    python main.py --data data/raw/earnings.xlsx --phase eda

    # Predict events kept in a separate sheet
    python main.py --data data/raw/earnings.xlsx --events data/raw/upcoming.xlsx
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from earnings_predictor.data_loader import (
    load_config, get_schema, load_data, validate_data, print_data_summary
)
from earnings_predictor.eda import generate_eda_report, print_correlation_insights
from earnings_predictor.preprocessing import preprocess_pipeline, print_preprocessing_summary
from earnings_predictor.model import train_model, print_model_summary, EarningsEnsembleModel
from earnings_predictor.evaluation import evaluate_model, print_evaluation_report, ENSEMBLE_KEY
from earnings_predictor.prediction import run_final_prediction, print_prediction_results


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def load_events(
    data_path: str,
    config: Dict[str, Any],
    require_label: bool = True
) -> pd.DataFrame:
    """Load and validate an earnings spreadsheet using the configured schema."""
    schema = get_schema(config)
    df = load_data(
        data_path,
        sheet_name=config.get('data', {}).get('sheet_name'),
        parse_dates=schema.get('date_column')
    )
    is_valid, _ = validate_data(df, schema, strict=False, require_label=require_label)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")
    return df


def run_eda(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(df, get_schema(config), output_dir=output_dir, show_plots=False)
    print_correlation_insights(report['label_correlations'])

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 2: Data Preprocessing.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    prep_config = config.get('preprocessing', {})
    save_path = config.get('output', {}).get('preprocessor_path', 'models/preprocessor.joblib')
    Path(save_path).parent.mkdir(parents=True, exist_ok=True)

    result = preprocess_pipeline(
        df,
        get_schema(config),
        test_size=prep_config.get('test_size', 0.2),
        random_state=prep_config.get('random_state', 42),
        shuffle=prep_config.get('shuffle', True),
        save_preprocessor=save_path
    )

    print_preprocessing_summary(result)

    return result


def run_training(prep_result: Dict[str, Any], config: Dict[str, Any]) -> EarningsEnsembleModel:
    """
    Execute Phase 3: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Trained ensemble
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TRAINING")
    print("=" * 70)

    model_path = config.get('output', {}).get('model_path', 'models/ensemble.joblib')

    model = train_model(
        prep_result['X_train'],
        prep_result['y_train'],
        config,
        save_path=model_path
    )

    print_model_summary(model, prep_result['feature_names'])

    return model


def run_evaluation(
    model: EarningsEnsembleModel,
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation.

    Args:
        model: Trained ensemble
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    predictions = model.predict_by_model(prep_result['X_test'])
    predictions[ENSEMBLE_KEY] = model.predict(prep_result['X_test'])

    output_dir = config.get('output', {}).get('reports_path', 'reports/')

    result = evaluate_model(
        prep_result['y_test'],
        predictions,
        output_dir=output_dir,
        show_plots=False
    )

    print_evaluation_report(result['metrics'])

    return result


def run_final_prediction_phase(
    df: pd.DataFrame,
    config: Dict[str, Any],
    eval_result: Optional[Dict[str, Any]] = None,
    events: Optional[pd.DataFrame] = None
) -> Dict[str, Any]:
    """
    Execute Phase 5: Final Prediction.

    Retrains on the full history and predicts the upcoming events.

    Args:
        df: Full earnings table
        config: Configuration dictionary
        eval_result: Evaluation result with metrics (for intervals)
        events: Separate upcoming events (default: unlabelled rows of df)

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: FINAL PREDICTION")
    print("=" * 70)

    output_dir = config.get('data', {}).get('predictions_path', 'data/predictions/')

    result = run_final_prediction(
        history=df,
        upcoming=events,
        schema=get_schema(config),
        config=config,
        metrics=eval_result['metrics'] if eval_result else None,
        output_dir=output_dir
    )

    print_prediction_results(result)

    return result


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    events_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        data_path: Path to the earnings spreadsheet
        config_path: Path to configuration file
        events_path: Path to a spreadsheet of upcoming events (optional)

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("EARNINGS MOVE PREDICTION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    print("\n📊 Loading data...")
    df = load_events(data_path, config)
    print_data_summary(df)

    events = load_events(events_path, config, require_label=False) if events_path else None

    results = {
        'config': config,
        'data_shape': df.shape
    }

    results['eda'] = run_eda(df, config)
    results['preprocessing'] = run_preprocessing(df, config)
    results['model'] = run_training(results['preprocessing'], config)
    results['evaluation'] = run_evaluation(results['model'], results['preprocessing'], config)
    results['prediction'] = run_final_prediction_phase(
        df, config, results['evaluation'], events
    )

    metrics = results['evaluation']['metrics']
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"  • Ensemble RMSE: {metrics['overall'].get('ensemble_rmse', float('nan')):.4f}")
    print(f"  • Events predicted: {len(results['prediction']['predictions'])}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml",
    events_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline.

    Args:
        phase: Phase to run ('eda', 'preprocess', 'train', 'evaluate', 'predict')
        data_path: Path to the earnings spreadsheet
        config_path: Path to configuration file
        events_path: Path to a spreadsheet of upcoming events (optional)

    Returns:
        Phase result dictionary
    """
    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    df = load_events(data_path, config)

    if phase == 'eda':
        return run_eda(df, config)

    elif phase == 'preprocess':
        return run_preprocessing(df, config)

    elif phase == 'train':
        prep_result = run_preprocessing(df, config)
        return {'model': run_training(prep_result, config), 'preprocessing': prep_result}

    elif phase == 'evaluate':
        prep_result = run_preprocessing(df, config)
        model = run_training(prep_result, config)
        return run_evaluation(model, prep_result, config)

    elif phase == 'predict':
        # Intervals need hold-out metrics, so evaluate first
        prep_result = run_preprocessing(df, config)
        model = run_training(prep_result, config)
        eval_result = run_evaluation(model, prep_result, config)
        events = load_events(events_path, config, require_label=False) if events_path else None
        return run_final_prediction_phase(df, config, eval_result, events)

    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: eda, preprocess, train, evaluate, predict")


def main(argv=None):
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Post-earnings next-day move prediction with a boosted-tree ensemble",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/earnings.xlsx
  python main.py --data data/raw/earnings.xlsx --phase eda
  python main.py --data data/raw/earnings.csv --events data/raw/upcoming.csv
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        required=True,
        help='Path to the earnings spreadsheet (.xlsx, .xls or .csv)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--events', '-e',
        type=str,
        default=None,
        help='Spreadsheet of upcoming events (default: unlabelled rows of --data)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda', 'preprocess', 'train', 'evaluate', 'predict', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    args = parser.parse_args(argv)

    for label, path in (('Data', args.data), ('Events', args.events)):
        if path and not Path(path).exists():
            print(f"Error: {label} file not found: {path}")
            print("\nExpected a spreadsheet with one row per earnings event and a "
                  "next-day move column.")
            return 1

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        if args.phase == 'all':
            run_full_pipeline(args.data, args.config, args.events)
        else:
            run_single_phase(args.phase, args.data, args.config, args.events)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
