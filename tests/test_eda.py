"""
Test Suite for EDA Module
==========================
"""

import numpy as np
import pandas as pd

from earnings_predictor.eda import generate_eda_report, label_correlations


def test_label_correlations_sorted_by_strength(earnings_df):
    correlations = label_correlations(earnings_df, 'next_day_move_pct')

    assert 'next_day_move_pct' not in correlations.index
    assert correlations.index[0] in ('put_call_ratio', 'put_call_oi_ratio')
    assert correlations['put_call_ratio'] < 0
    assert list(correlations.abs()) == sorted(correlations.abs(), reverse=True)


def test_generate_eda_report(earnings_df, schema, tmp_path):
    df = earnings_df.copy()
    df.loc[df.index[-5:], 'next_day_move_pct'] = np.nan

    report = generate_eda_report(df, schema, output_dir=str(tmp_path))

    assert report['data_shape'][0] == 115
    assert report['label_statistics']['count'] == 115
    assert 0.0 <= report['label_statistics']['share_up'] <= 1.0
    for name in report['figures']:
        assert (tmp_path / name).exists()
    assert '02_move_by_category.png' in report['figures']
    assert 'ticker' not in report['correlation_matrix']
