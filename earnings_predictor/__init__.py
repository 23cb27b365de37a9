"""
Earnings Move Predictor
=======================

Predicts the next-day percentage move of a stock after an earnings
announcement with an averaged ensemble of gradient-boosted regressors.

Modules:
    - data_loader: Spreadsheet ingestion and validation
    - eda: Exploratory analysis of the earnings history (Phase 1)
    - preprocessing: Column transforms and train/test split (Phase 2)
    - model: XGBoost + LightGBM + CatBoost averaging ensemble (Phase 3)
    - evaluation: Hold-out metrics and diagnostics (Phase 4)
    - prediction: Forecasts for upcoming earnings events (Phase 5)
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
