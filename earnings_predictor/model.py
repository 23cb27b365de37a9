"""
Model Training Module - Phase 3
================================

Trains three gradient-boosted regressors on the same features and averages
their predictions.

Features:
    - XGBoost, LightGBM and CatBoost regressors fitted independently
    - Equal-weight ensemble averaging
    - Hyperparameter configuration via config file
    - Model persistence (save/load)
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
import xgboost as xgb
import lightgbm as lgb
from catboost import CatBoostRegressor

logger = logging.getLogger(__name__)

MODEL_NAMES = ('xgboost', 'lightgbm', 'catboost')


class EarningsEnsembleModel:
    """
    Averaging ensemble of XGBoost, LightGBM and CatBoost regressors.

    Each member sees the same feature matrix; the ensemble prediction is the
    arithmetic mean of the members' predictions.
    """

    def __init__(
        self,
        xgboost_params: Optional[Dict[str, Any]] = None,
        lightgbm_params: Optional[Dict[str, Any]] = None,
        catboost_params: Optional[Dict[str, Any]] = None,
        random_state: int = 42
    ):
        """
        Initialize the ensemble with per-library hyperparameters.

        Args:
            xgboost_params: Overrides passed to xgboost.XGBRegressor
            lightgbm_params: Overrides passed to lightgbm.LGBMRegressor
            catboost_params: Overrides passed to catboost.CatBoostRegressor
            random_state: Random seed shared by all three members
        """
        self.random_state = random_state

        self.xgboost_params = {
            'n_estimators': 300,
            'max_depth': 4,
            'learning_rate': 0.05,
            'subsample': 0.8,
            'colsample_bytree': 0.8,
            'tree_method': 'hist',
            'random_state': random_state,
            'verbosity': 0,
            **(xgboost_params or {})
        }
        self.lightgbm_params = {
            'n_estimators': 300,
            'num_leaves': 15,
            'learning_rate': 0.05,
            'min_child_samples': 10,
            'random_state': random_state,
            'verbose': -1,
            **(lightgbm_params or {})
        }
        self.catboost_params = {
            'iterations': 300,
            'depth': 4,
            'learning_rate': 0.05,
            'random_seed': random_state,
            'verbose': 0,
            'allow_writing_files': False,
            **(catboost_params or {})
        }

        self.models: Dict[str, Any] = {}
        self.n_features_in_: Optional[int] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def _create_estimators(self) -> Dict[str, Any]:
        """Create one unfitted regressor per boosting library."""
        return {
            'xgboost': xgb.XGBRegressor(**self.xgboost_params),
            'lightgbm': lgb.LGBMRegressor(**self.lightgbm_params),
            'catboost': CatBoostRegressor(**self.catboost_params),
        }

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'EarningsEnsembleModel':
        """
        Train every member of the ensemble on the provided data.

        Args:
            X: Feature array of shape (n_samples, n_features)
            y: Next-day move in percent, shape (n_samples,)

        Returns:
            Self for method chaining
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float).ravel()

        if len(X) != len(y):
            raise ValueError(f"X has {len(X)} rows but y has {len(y)} values")

        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info("STARTING MODEL TRAINING (Phase 3)")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, y={y.shape}")

        self.n_features_in_ = X.shape[1]
        self.models = self._create_estimators()

        durations = {}
        for name, estimator in self.models.items():
            member_start = datetime.now()
            logger.info(f"Fitting {name}...")
            estimator.fit(X, y)
            durations[name] = (datetime.now() - member_start).total_seconds()

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'member_durations_seconds': durations,
            'n_samples': X.shape[0],
            'n_features': X.shape[1],
            'trained_at': end_time.isoformat(),
            'hyperparameters': self.get_params()
        }

        self._is_fitted = True

        logger.info("=" * 60)
        logger.info(f"MODEL TRAINING COMPLETE in {training_duration:.2f} seconds")
        logger.info("=" * 60)

        return self

    def _check_input(self, X: np.ndarray) -> np.ndarray:
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)

        if X.shape[1] != self.n_features_in_:
            raise ValueError(
                f"Expected {self.n_features_in_} features, but got {X.shape[1]}"
            )
        return X

    def predict_by_model(self, X: np.ndarray) -> Dict[str, np.ndarray]:
        """
        Predictions from each member of the ensemble.

        Args:
            X: Feature array of shape (n_samples, n_features)

        Returns:
            Mapping of model name to predictions of shape (n_samples,)
        """
        X = self._check_input(X)
        return {
            name: np.asarray(estimator.predict(X), dtype=float).ravel()
            for name, estimator in self.models.items()
        }

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Ensemble prediction: the mean of the three members.

        Args:
            X: Feature array of shape (n_samples, n_features)

        Returns:
            Predicted next-day move in percent, shape (n_samples,)
        """
        member_predictions = self.predict_by_model(X)
        return np.mean(np.vstack(list(member_predictions.values())), axis=0)

    def get_feature_importances(
        self,
        feature_names: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Feature importances for each member, normalized to sum to 1.

        Args:
            feature_names: Names for the feature rows (default: feature_N)

        Returns:
            DataFrame indexed by feature with one column per model plus 'mean',
            sorted by mean importance
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")

        if feature_names is None:
            feature_names = [f"feature_{i}" for i in range(self.n_features_in_)]

        importances = {}
        for name, estimator in self.models.items():
            values = np.asarray(estimator.feature_importances_, dtype=float)
            total = values.sum()
            importances[name] = values / total if total > 0 else values

        frame = pd.DataFrame(importances, index=list(feature_names))
        frame['mean'] = frame[list(self.models)].mean(axis=1)
        return frame.sort_values('mean', ascending=False)

    def get_params(self) -> Dict[str, Any]:
        return {
            'xgboost_params': dict(self.xgboost_params),
            'lightgbm_params': dict(self.lightgbm_params),
            'catboost_params': dict(self.catboost_params),
            'random_state': self.random_state
        }

    def save(self, filepath: str) -> None:
        """
        Save the trained ensemble to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'models': self.models,
            'hyperparameters': self.get_params(),
            'n_features_in_': self.n_features_in_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'EarningsEnsembleModel':
        """
        Load a trained ensemble from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded EarningsEnsembleModel instance
        """
        state = joblib.load(filepath)

        model = cls(**state['hyperparameters'])
        model.models = state['models']
        model.n_features_in_ = state['n_features_in_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def train_model(
    X_train: np.ndarray,
    y_train: np.ndarray,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> EarningsEnsembleModel:
    """
    Train the ensemble using configuration parameters.

    Args:
        X_train: Training features
        y_train: Training targets (next-day move in percent)
        config: Full configuration dictionary (reads the 'model' section)
        save_path: Path to save the trained model (optional)

    Returns:
        Trained EarningsEnsembleModel
    """
    model_config = config.get('model', {}) or {}

    model = EarningsEnsembleModel(
        xgboost_params=model_config.get('xgboost'),
        lightgbm_params=model_config.get('lightgbm'),
        catboost_params=model_config.get('catboost'),
        random_state=model_config.get('random_state', 42)
    )

    model.fit(X_train, y_train)

    if save_path:
        model.save(save_path)

    return model


def print_model_summary(
    model: EarningsEnsembleModel,
    feature_names: Optional[List[str]] = None,
    top_n: int = 10
) -> None:
    """
    Print a summary of the trained ensemble.

    Args:
        model: Trained model instance
        feature_names: Encoded feature names for the importance table
        top_n: Number of most important features to list
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print("Model Type: mean(XGBRegressor, LGBMRegressor, CatBoostRegressor)")
    print(f"Number of input features: {model.n_features_in_}")

    if model.training_info:
        print("\nTraining Info:")
        print(f"  - Duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")
        print(f"  - Samples: {model.training_info.get('n_samples', 'N/A')}")
        for name, seconds in model.training_info.get('member_durations_seconds', {}).items():
            print(f"  - {name}: {seconds:.2f}s")

    if model._is_fitted:
        importances = model.get_feature_importances(feature_names).head(top_n)
        print(f"\nTop {len(importances)} features (mean normalized importance):")
        for feature, row in importances.iterrows():
            print(f"  - {feature:<30} {row['mean']:.4f}")

    print("=" * 50 + "\n")
