"""
Data Preprocessing Module - Phase 2
====================================

Turns the earnings table into a numeric feature matrix and splits it
into train and test sets.

Functions:
    - EarningsPreprocessor: ColumnTransformer wrapper (one-hot, ordinal, numeric)
    - preprocess_pipeline: Split rows, fit on training rows, transform both
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, OrdinalEncoder
import joblib

logger = logging.getLogger(__name__)


class EarningsPreprocessor:
    """
    Preprocessing pipeline for earnings event records.

    Identifier columns are dropped, nominal categories are one-hot encoded,
    graded columns are mapped onto their ordered scale and the remaining
    numeric indicators pass through with median imputation.
    """

    def __init__(
        self,
        label_column: str = 'next_day_move_pct',
        drop_columns: Optional[List[str]] = None,
        nominal_columns: Optional[List[str]] = None,
        ordinal_columns: Optional[Dict[str, List[str]]] = None,
        date_column: Optional[str] = 'date',
        test_size: float = 0.2,
        random_state: int = 42,
        shuffle: bool = True
    ):
        """
        Initialize the preprocessor.

        Args:
            label_column: Column holding the next-day % move
            drop_columns: Identifier columns excluded from the features
            nominal_columns: Unordered categorical columns (one-hot encoded)
            ordinal_columns: Mapping of column -> ordered scale, lowest first
            date_column: Column used to order rows for a chronological split
            test_size: Fraction of rows held out for testing
            random_state: Random seed for the shuffled split
            shuffle: Shuffle before splitting (False = chronological split)
        """
        self.label_column = label_column
        self.drop_columns = list(drop_columns or [])
        self.nominal_columns = list(nominal_columns or [])
        self.ordinal_columns = dict(ordinal_columns or {})
        self.date_column = date_column
        self.test_size = test_size
        self.random_state = random_state
        self.shuffle = shuffle

        self.transformer: Optional[ColumnTransformer] = None
        self.numeric_columns: Optional[List[str]] = None
        self.n_features: Optional[int] = None
        self._is_fitted = False

    def _prepare_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        """Normalize categorical values so 'tech ' and 'Tech' encode alike."""
        df = df.copy()
        for col in self.nominal_columns:
            if col in df.columns:
                values = df[col]
                df[col] = values.astype(object).where(
                    values.isnull(), values.astype(str).str.strip()
                )
        for col in self.ordinal_columns:
            if col in df.columns:
                values = df[col]
                df[col] = values.astype(object).where(
                    values.isnull(), values.astype(str).str.strip().str.upper()
                )
        return df

    def _select_numeric_columns(self, df: pd.DataFrame) -> List[str]:
        excluded = (
            {self.label_column}
            | set(self.drop_columns)
            | set(self.nominal_columns)
            | set(self.ordinal_columns)
        )
        return [
            col for col in df.select_dtypes(include=[np.number]).columns
            if col not in excluded
        ]

    def _build_transformer(self) -> ColumnTransformer:
        transformers = []

        if self.nominal_columns:
            transformers.append((
                'nominal',
                Pipeline([
                    ('impute', SimpleImputer(strategy='constant', fill_value='missing')),
                    ('encode', OneHotEncoder(handle_unknown='ignore', sparse_output=False)),
                ]),
                self.nominal_columns
            ))

        if self.ordinal_columns:
            columns = list(self.ordinal_columns)
            categories = [[s.upper() for s in self.ordinal_columns[c]] for c in columns]
            transformers.append((
                'ordinal',
                Pipeline([
                    ('impute', SimpleImputer(strategy='most_frequent')),
                    ('encode', OrdinalEncoder(
                        categories=categories,
                        handle_unknown='use_encoded_value',
                        unknown_value=np.nan
                    )),
                ]),
                columns
            ))

        if self.numeric_columns:
            transformers.append((
                'numeric',
                SimpleImputer(strategy='median'),
                self.numeric_columns
            ))

        if not transformers:
            raise ValueError("No feature columns left after dropping identifiers and label")

        return ColumnTransformer(
            transformers,
            remainder='drop',
            verbose_feature_names_out=False
        )

    def fit(self, df: pd.DataFrame) -> 'EarningsPreprocessor':
        """
        Fit the column transform to the training rows.

        Args:
            df: DataFrame of labelled training events

        Returns:
            Self for method chaining
        """
        df = self._prepare_frame(df)
        self.numeric_columns = self._select_numeric_columns(df)

        empty = [c for c in self.ordinal_columns if c in df.columns and df[c].isnull().all()]
        if empty:
            raise ValueError(
                f"Ordinal columns have no values in the training rows: {empty}. "
                f"Fill them in or remove them from ordinal_columns"
            )

        self.transformer = self._build_transformer()
        self.transformer.fit(df)
        self.n_features = len(self.transformer.get_feature_names_out())

        logger.info(
            f"Fitted column transform: {len(self.nominal_columns)} nominal, "
            f"{len(self.ordinal_columns)} ordinal, {len(self.numeric_columns)} numeric "
            f"-> {self.n_features} features"
        )

        self._is_fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> np.ndarray:
        """
        Transform events into the model's feature matrix.

        Args:
            df: DataFrame to transform (label column optional)

        Returns:
            Feature array of shape (n_rows, n_features)
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")

        return np.asarray(self.transformer.transform(self._prepare_frame(df)), dtype=float)

    def fit_transform(self, df: pd.DataFrame) -> np.ndarray:
        self.fit(df)
        return self.transform(df)

    def extract_target(self, df: pd.DataFrame) -> np.ndarray:
        """Return the next-day move as a float array."""
        return pd.to_numeric(df[self.label_column], errors='coerce').to_numpy(dtype=float)

    def split(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Split rows into train and test frames.

        With shuffle disabled the rows are ordered by the date column first,
        so the test set is the most recent events.

        Args:
            df: Labelled events

        Returns:
            Tuple of (train_df, test_df)
        """
        if not self.shuffle and self.date_column and self.date_column in df.columns:
            df = df.sort_values(self.date_column, kind='mergesort')

        train_df, test_df = train_test_split(
            df,
            test_size=self.test_size,
            random_state=self.random_state if self.shuffle else None,
            shuffle=self.shuffle
        )

        logger.info(
            f"Train/Test split: {len(train_df)} train events, {len(test_df)} test events "
            f"({'shuffled' if self.shuffle else 'chronological'})"
        )

        return train_df, test_df

    def get_feature_names(self) -> List[str]:
        """
        Names of the encoded features, e.g. 'industry_Technology'.

        Returns:
            List of feature names in matrix column order
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted first.")

        return [str(name) for name in self.transformer.get_feature_names_out()]

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'label_column': self.label_column,
            'drop_columns': self.drop_columns,
            'nominal_columns': self.nominal_columns,
            'ordinal_columns': self.ordinal_columns,
            'date_column': self.date_column,
            'test_size': self.test_size,
            'random_state': self.random_state,
            'shuffle': self.shuffle,
            'transformer': self.transformer,
            'numeric_columns': self.numeric_columns,
            'n_features': self.n_features,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'EarningsPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded EarningsPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            label_column=state['label_column'],
            drop_columns=state['drop_columns'],
            nominal_columns=state['nominal_columns'],
            ordinal_columns=state['ordinal_columns'],
            date_column=state['date_column'],
            test_size=state['test_size'],
            random_state=state['random_state'],
            shuffle=state['shuffle']
        )
        preprocessor.transformer = state['transformer']
        preprocessor.numeric_columns = state['numeric_columns']
        preprocessor.n_features = state['n_features']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor


def build_preprocessor(
    schema: Dict[str, Any],
    test_size: float = 0.2,
    random_state: int = 42,
    shuffle: bool = True
) -> EarningsPreprocessor:
    """Create an unfitted preprocessor from the configured column roles."""
    return EarningsPreprocessor(
        label_column=schema['label_column'],
        drop_columns=schema.get('drop_columns'),
        nominal_columns=schema.get('nominal_columns'),
        ordinal_columns=schema.get('ordinal_columns'),
        date_column=schema.get('date_column'),
        test_size=test_size,
        random_state=random_state,
        shuffle=shuffle
    )


def preprocess_pipeline(
    df: pd.DataFrame,
    schema: Dict[str, Any],
    test_size: float = 0.2,
    random_state: int = 42,
    shuffle: bool = True,
    save_preprocessor: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing pipeline for the earnings history.

    Args:
        df: Raw DataFrame (unlabelled rows are ignored)
        schema: Column roles from data_loader.get_schema
        test_size: Fraction of events held out for testing
        random_state: Seed for the shuffled split
        shuffle: Shuffle before splitting (False = chronological)
        save_preprocessor: Path to save the fitted preprocessor

    Returns:
        Dictionary containing:
            - X_train, X_test, y_train, y_test: Split datasets
            - preprocessor: Fitted EarningsPreprocessor
            - feature_names: Names of encoded features
            - train_frame, test_frame: The raw rows behind each split
    """
    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 2)")
    logger.info("=" * 60)

    label = schema['label_column']
    history = df[pd.to_numeric(df[label], errors='coerce').notnull()]
    dropped = len(df) - len(history)
    if dropped:
        logger.info(f"Ignoring {dropped} unlabelled rows (upcoming events)")

    if len(history) < 2:
        raise ValueError(
            f"Need at least 2 labelled events to split, found {len(history)}"
        )

    preprocessor = build_preprocessor(schema, test_size, random_state, shuffle)

    train_df, test_df = preprocessor.split(history)

    # Fit on training rows only so test categories and medians stay unseen
    X_train = preprocessor.fit_transform(train_df)
    X_test = preprocessor.transform(test_df)
    y_train = preprocessor.extract_target(train_df)
    y_test = preprocessor.extract_target(test_df)

    if save_preprocessor:
        preprocessor.save(save_preprocessor)

    result = {
        'X_train': X_train,
        'X_test': X_test,
        'y_train': y_train,
        'y_test': y_test,
        'preprocessor': preprocessor,
        'feature_names': preprocessor.get_feature_names(),
        'train_frame': train_df,
        'test_frame': test_df
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training events: {len(X_train)}")
    logger.info(f"  Test events: {len(X_test)}")
    logger.info(f"  Features per event: {X_train.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    preprocessor = result['preprocessor']
    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Training events: {result['X_train'].shape[0]}")
    print(f"Test events: {result['X_test'].shape[0]}")
    print(f"Features per event: {result['X_train'].shape[1]}")
    print(f"\nOne-hot columns: {', '.join(preprocessor.nominal_columns) or 'none'}")
    print(f"Ordinal columns: {', '.join(preprocessor.ordinal_columns) or 'none'}")
    print(f"Numeric columns: {', '.join(preprocessor.numeric_columns) or 'none'}")
    print(f"Test size: {preprocessor.test_size} "
          f"({'shuffled' if preprocessor.shuffle else 'chronological'})")
    print("=" * 50 + "\n")
