"""
Test Suite for Evaluation Module
=================================
"""

import json

import pytest
import numpy as np

from earnings_predictor.evaluation import (
    calculate_metrics, directional_accuracy, evaluate_model, ENSEMBLE_KEY
)


class TestDirectionalAccuracy:

    def test_all_signs_match(self):
        assert directional_accuracy([1.0, -2.0, 3.0], [0.5, -0.1, 9.0]) == 1.0

    def test_half_match(self):
        assert directional_accuracy([1.0, -2.0, 3.0, -4.0], [1.0, 2.0, -3.0, -4.0]) == 0.5

    def test_zero_counts_as_up(self):
        assert directional_accuracy([0.0, -1.0], [2.0, 0.0]) == 0.5

    def test_empty(self):
        assert np.isnan(directional_accuracy([], []))


class TestCalculateMetrics:

    @pytest.fixture
    def outcomes(self):
        y_true = np.array([5.0, -3.0, 2.0, -1.0])
        predictions = {
            'xgboost': np.array([4.0, -2.0, 1.0, 1.0]),
            'lightgbm': np.array([5.0, -3.0, 2.0, -1.0]),
            ENSEMBLE_KEY: np.array([4.5, -2.5, 1.5, 0.0]),
        }
        return y_true, predictions

    def test_per_model_values(self, outcomes):
        y_true, predictions = outcomes
        metrics = calculate_metrics(y_true, predictions)

        xgb = metrics['per_model']['xgboost']
        assert xgb['mae'] == pytest.approx(1.25)
        assert xgb['rmse'] == pytest.approx(np.sqrt(7 / 4))
        assert xgb['directional_accuracy'] == pytest.approx(0.75)
        assert xgb['max_error'] == pytest.approx(2.0)

    def test_best_model(self, outcomes):
        y_true, predictions = outcomes
        metrics = calculate_metrics(y_true, predictions)

        assert metrics['overall']['best_model'] == 'lightgbm'
        assert metrics['overall']['best_rmse'] == pytest.approx(0.0)
        assert metrics['overall']['n_samples'] == 4
        assert metrics['overall']['actual_mean_abs_move'] == pytest.approx(2.75)

    def test_ensemble_summary(self, outcomes):
        y_true, predictions = outcomes
        metrics = calculate_metrics(y_true, predictions)

        assert metrics['overall']['ensemble_rmse'] == metrics['per_model'][ENSEMBLE_KEY]['rmse']

    def test_single_sample_r2_is_nan(self):
        metrics = calculate_metrics(np.array([1.0]), {ENSEMBLE_KEY: np.array([2.0])})
        assert np.isnan(metrics['per_model'][ENSEMBLE_KEY]['r2'])


class TestEvaluateModel:

    def test_writes_metrics_and_figures(self, tmp_path):
        rng = np.random.RandomState(1)
        y_true = rng.randn(40) * 5
        predictions = {
            'xgboost': y_true + rng.randn(40),
            'lightgbm': y_true + rng.randn(40),
            'catboost': y_true + rng.randn(40),
        }
        predictions[ENSEMBLE_KEY] = np.mean(list(predictions.values()), axis=0)

        result = evaluate_model(y_true, predictions, output_dir=str(tmp_path))

        with open(result['metrics_file']) as f:
            saved = json.load(f)
        assert set(saved['per_model']) == {'xgboost', 'lightgbm', 'catboost', ENSEMBLE_KEY}

        for name in result['figures']:
            assert (tmp_path / "figures" / name).exists()
        assert "eval_residuals.png" in result['figures']

    def test_metrics_file_is_strict_json(self, tmp_path):
        result = evaluate_model(
            np.array([1.5]), {ENSEMBLE_KEY: np.array([2.0])}, output_dir=str(tmp_path)
        )

        with open(result['metrics_file']) as f:
            saved = json.load(f, parse_constant=lambda name: pytest.fail(f"non-JSON constant {name}"))
        assert saved['per_model'][ENSEMBLE_KEY]['r2'] is None
        assert saved['per_model'][ENSEMBLE_KEY]['rmse'] == pytest.approx(0.5)

    def test_empty_test_set(self, tmp_path):
        with pytest.raises(ValueError, match="No test events"):
            evaluate_model(np.array([]), {ENSEMBLE_KEY: np.array([])}, output_dir=str(tmp_path))
