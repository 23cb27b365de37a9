"""Shared fixtures: synthetic earnings event tables."""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

GRADES = ['F', 'D', 'C', 'B', 'A']

SCHEMA = {
    'label_column': 'next_day_move_pct',
    'date_column': 'date',
    'ticker_column': 'ticker',
    'drop_columns': ['date', 'ticker'],
    'nominal_columns': ['weekday', 'industry', 'revenue_source'],
    'ordinal_columns': {'momentum_grade': GRADES},
}


def make_earnings_frame(n_rows: int = 120, seed: int = 42) -> pd.DataFrame:
    """Earnings events where the move depends on momentum and put/call ratio."""
    rng = np.random.RandomState(seed)

    grades = rng.choice(GRADES, n_rows)
    put_call = rng.uniform(0.3, 1.8, n_rows)
    rsi = rng.uniform(20, 80, n_rows)
    grade_score = np.array([GRADES.index(g) for g in grades], dtype=float)

    move = 2.0 * (grade_score - 2) - 4.0 * (put_call - 1.0) + rng.randn(n_rows)

    return pd.DataFrame({
        'date': pd.date_range('2021-01-04', periods=n_rows, freq='B'),
        'ticker': [f'TK{i:03d}' for i in range(n_rows)],
        'weekday': rng.choice(['Monday', 'Tuesday', 'Wednesday', 'Thursday'], n_rows),
        'industry': rng.choice(['Technology', 'Healthcare', 'Retail'], n_rows),
        'revenue_source': rng.choice(['Subscription', 'Product', 'Services'], n_rows),
        'momentum_grade': grades,
        'put_call_ratio': put_call,
        'put_call_oi_ratio': put_call * rng.uniform(0.8, 1.2, n_rows),
        'rsi': rsi,
        'macd': rng.randn(n_rows),
        'next_day_move_pct': move,
    })


@pytest.fixture
def earnings_df():
    return make_earnings_frame()


@pytest.fixture
def schema():
    return {k: (v.copy() if hasattr(v, 'copy') else v) for k, v in SCHEMA.items()}


@pytest.fixture
def fast_config():
    """Small boosting rounds so the ensemble fits quickly."""
    return {
        'model': {
            'random_state': 0,
            'xgboost': {'n_estimators': 20},
            'lightgbm': {'n_estimators': 20, 'min_child_samples': 5},
            'catboost': {'iterations': 20},
        },
        'prediction': {'confidence_level': 0.95, 'straddle_threshold': 3.0},
    }
