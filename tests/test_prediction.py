"""
Test Suite for Prediction Module
=================================

Tests for intervals, straddle screening and the final prediction workflow.
"""

import json

import pytest
import numpy as np
import pandas as pd

from conftest import make_earnings_frame
from earnings_predictor.model import train_model
from earnings_predictor.prediction import (
    PREDICTION_COLUMN,
    annotate_predictions,
    calculate_confidence_intervals,
    export_predictions,
    flag_straddle_candidates,
    predict_events,
    run_final_prediction,
)
from earnings_predictor.preprocessing import build_preprocessor


class TestConfidenceIntervals:

    def test_symmetric_95_interval(self):
        intervals = calculate_confidence_intervals(np.array([5.5, -3.0]), historical_rmse=2.0)

        np.testing.assert_allclose(intervals['margin_of_error'], [3.919928, 3.919928], rtol=1e-5)
        np.testing.assert_allclose(intervals['lower_bound'], [5.5 - 3.919928, -3.0 - 3.919928], rtol=1e-5)
        np.testing.assert_allclose(
            intervals['upper_bound'] - intervals['lower_bound'],
            2 * intervals['margin_of_error']
        )

    def test_90_interval_is_narrower(self):
        wide = calculate_confidence_intervals(np.array([0.0]), 1.0, 0.95)
        narrow = calculate_confidence_intervals(np.array([0.0]), 1.0, 0.90)

        assert narrow['margin_of_error'][0] == pytest.approx(1.644854, rel=1e-5)
        assert narrow['margin_of_error'][0] < wide['margin_of_error'][0]

    def test_invalid_level(self):
        with pytest.raises(ValueError, match="confidence_level"):
            calculate_confidence_intervals(np.array([1.0]), 1.0, 1.5)


class TestStraddleScreening:

    def test_threshold_is_inclusive_both_ways(self):
        flags = flag_straddle_candidates(np.array([5.0, -5.0, 4.99, -12.0, 0.0]), 5.0)
        assert list(flags) == [True, True, False, True, False]

    def test_annotate(self):
        frame = pd.DataFrame({'ticker': ['AAA', 'BBB'], PREDICTION_COLUMN: [5.5, -3.0]})

        annotated = annotate_predictions(frame, historical_rmse=1.0, straddle_threshold=5.0)

        assert list(annotated['direction']) == ['up', 'down']
        assert list(annotated['straddle_candidate']) == [True, False]
        assert annotated['lower_bound'].iloc[0] < 5.5 < annotated['upper_bound'].iloc[0]

    def test_annotate_without_metrics_has_no_interval(self):
        frame = pd.DataFrame({PREDICTION_COLUMN: [1.0]})
        annotated = annotate_predictions(frame)

        assert 'lower_bound' not in annotated.columns


class TestPredictEvents:

    def test_columns_and_mean(self, earnings_df, schema, fast_config):
        preprocessor = build_preprocessor(schema)
        X = preprocessor.fit_transform(earnings_df)
        model = train_model(X, preprocessor.extract_target(earnings_df), fast_config)

        upcoming = earnings_df.drop(columns=['next_day_move_pct']).iloc[:4]
        frame = predict_events(model, preprocessor, upcoming, id_columns=['ticker', 'date', 'absent'])

        assert list(frame.columns) == [
            'ticker', 'date', 'xgboost_pct', 'lightgbm_pct', 'catboost_pct', PREDICTION_COLUMN
        ]
        np.testing.assert_allclose(
            frame[PREDICTION_COLUMN],
            frame[['xgboost_pct', 'lightgbm_pct', 'catboost_pct']].mean(axis=1)
        )

    def test_no_events(self, earnings_df, schema, fast_config):
        preprocessor = build_preprocessor(schema)
        X = preprocessor.fit_transform(earnings_df)
        model = train_model(X, preprocessor.extract_target(earnings_df), fast_config)

        with pytest.raises(ValueError, match="No events"):
            predict_events(model, preprocessor, earnings_df.iloc[:0])


def test_export_predictions(tmp_path):
    frame = pd.DataFrame({'ticker': ['AAA'], PREDICTION_COLUMN: [2.0]})
    path = export_predictions(frame, str(tmp_path), include_timestamp=False)

    assert path.endswith("earnings_predictions.csv")
    assert pd.read_csv(path)['ticker'].tolist() == ['AAA']


class TestRunFinalPrediction:

    @pytest.fixture
    def history(self):
        df = make_earnings_frame(n_rows=100)
        df.loc[df.index[-2:], 'next_day_move_pct'] = np.nan
        return df

    def test_predicts_unlabelled_rows(self, history, schema, fast_config, tmp_path):
        metrics = {'per_model': {'ensemble': {'rmse': 1.5}}}

        result = run_final_prediction(
            history, None, schema, fast_config, metrics=metrics, output_dir=str(tmp_path)
        )
        frame = result['predictions']

        assert frame['ticker'].tolist() == ['TK098', 'TK099']
        assert {'lower_bound', 'upper_bound', 'direction', 'straddle_candidate'} <= set(frame.columns)
        assert result['model'].training_info['n_samples'] == 98

        with open(result['report_path']) as f:
            report = json.load(f)
        assert report['summary']['n_events'] == 2
        assert report['straddle_threshold'] == 3.0

    def test_separate_events_frame(self, history, schema, fast_config, tmp_path):
        upcoming = make_earnings_frame(n_rows=3, seed=9).drop(columns=['next_day_move_pct'])

        result = run_final_prediction(
            history, upcoming, schema, fast_config, output_dir=str(tmp_path)
        )

        assert len(result['predictions']) == 3
        assert 'lower_bound' not in result['predictions'].columns

    def test_non_numeric_label_is_not_trained_on(self, schema, fast_config, tmp_path):
        df = make_earnings_frame(n_rows=40)
        df['next_day_move_pct'] = df['next_day_move_pct'].astype(object)
        df.loc[df.index[10], 'next_day_move_pct'] = 'n/a'

        result = run_final_prediction(df, None, schema, fast_config, output_dir=str(tmp_path))

        assert result['model'].training_info['n_samples'] == 39
        assert result['predictions']['ticker'].tolist() == ['TK010']

    def test_nothing_to_predict(self, schema, fast_config, tmp_path):
        with pytest.raises(ValueError, match="No upcoming events"):
            run_final_prediction(
                make_earnings_frame(n_rows=30), None, schema, fast_config,
                output_dir=str(tmp_path)
            )
