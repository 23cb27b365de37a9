"""
Test Suite for Data Loader Module
==================================

Tests for spreadsheet loading, configuration and validation.
"""

import pytest
import numpy as np
import pandas as pd

from earnings_predictor.data_loader import (
    load_config, get_schema, load_data, validate_data,
    split_labelled, get_data_summary, normalize_column_name
)


class TestLoadConfig:

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("preprocessing:\n  test_size: 0.3\n")

        config = load_config(str(path))
        assert config['preprocessing']['test_size'] == 0.3

    def test_empty_config_is_dict(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(str(path)) == {}

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_schema_overrides_defaults(self):
        schema = get_schema({'schema': {'label_column': 'gain', 'nominal_columns': ['sector']}})

        assert schema['label_column'] == 'gain'
        assert schema['nominal_columns'] == ['sector']
        assert schema['ordinal_columns'] == {'momentum_grade': ['F', 'D', 'C', 'B', 'A']}


class TestLoadData:
    """Tests for load_data."""

    def test_column_names_normalized(self):
        assert normalize_column_name(' Put/Call Ratio ') == 'put_call_ratio'
        assert normalize_column_name('Revenue Source') == 'revenue_source'
        assert normalize_column_name('Next-Day Move Pct') == 'next_day_move_pct'

    def test_load_csv(self, tmp_path, earnings_df):
        path = tmp_path / "events.csv"
        frame = earnings_df.rename(columns={'momentum_grade': 'Momentum Grade'})
        frame.to_csv(path, index=False)

        df = load_data(str(path), parse_dates='date')

        assert df.shape == earnings_df.shape
        assert 'momentum_grade' in df.columns
        assert pd.api.types.is_datetime64_any_dtype(df['date'])

    def test_load_excel(self, tmp_path, earnings_df):
        path = tmp_path / "events.xlsx"
        earnings_df.to_excel(path, index=False, sheet_name='history')

        df = load_data(str(path))

        assert df.shape == earnings_df.shape
        np.testing.assert_allclose(df['rsi'], earnings_df['rsi'])

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "events.json"
        path.write_text("{}")

        with pytest.raises(ValueError, match="Unsupported file type"):
            load_data(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "missing.xlsx"))


class TestValidateData:
    """Tests for validate_data."""

    def test_clean_data_is_valid(self, earnings_df, schema):
        is_valid, report = validate_data(earnings_df, schema)

        assert is_valid
        assert report['issues'] == []
        assert report['unlabelled_rows'] == 0

    def test_missing_required_column_always_raises(self, earnings_df, schema):
        df = earnings_df.drop(columns=['industry'])

        with pytest.raises(ValueError, match="Missing required columns"):
            validate_data(df, schema, strict=False)

    def test_unlabelled_rows_are_not_issues(self, earnings_df, schema):
        df = earnings_df.copy()
        df.loc[df.index[-2:], 'next_day_move_pct'] = np.nan

        is_valid, report = validate_data(df, schema)

        assert is_valid
        assert report['unlabelled_rows'] == 2
        assert report['labelled_rows'] == 118

    def test_grade_outside_scale(self, earnings_df, schema):
        df = earnings_df.copy()
        df.loc[0, 'momentum_grade'] = 'E'

        is_valid, report = validate_data(df, schema, strict=False)

        assert not is_valid
        assert any("outside scale" in issue for issue in report['issues'])

    def test_strict_raises_on_issue(self, earnings_df, schema):
        df = pd.concat([earnings_df, earnings_df.iloc[:1]])

        with pytest.raises(ValueError, match="Duplicate rows"):
            validate_data(df, schema, strict=True)

    def test_missing_feature_values_reported(self, earnings_df, schema):
        df = earnings_df.copy()
        df.loc[:4, 'macd'] = np.nan

        _, report = validate_data(df, schema, strict=False)

        assert report['missing_by_column'] == {'macd': 5}

    def test_events_sheet_without_label(self, earnings_df, schema):
        df = earnings_df.drop(columns=['next_day_move_pct']).iloc[:5]

        is_valid, report = validate_data(df, schema, require_label=False)

        assert is_valid
        assert report['unlabelled_rows'] == 5
        assert report['labelled_rows'] == 0

    def test_label_still_required_by_default(self, earnings_df, schema):
        df = earnings_df.drop(columns=['next_day_move_pct'])

        with pytest.raises(ValueError, match="next_day_move_pct"):
            validate_data(df, schema, strict=False)


def test_split_labelled(earnings_df):
    df = earnings_df.copy()
    df.loc[df.index[:3], 'next_day_move_pct'] = np.nan

    history, upcoming = split_labelled(df, 'next_day_move_pct')

    assert len(history) == 117
    assert len(upcoming) == 3
    assert upcoming['next_day_move_pct'].isnull().all()


def test_split_labelled_non_numeric_label(earnings_df):
    df = earnings_df.copy()
    df['next_day_move_pct'] = df['next_day_move_pct'].astype(object)
    df.loc[df.index[5], 'next_day_move_pct'] = 'n/a'

    history, upcoming = split_labelled(df, 'next_day_move_pct')

    assert len(history) == 119
    assert upcoming.index.tolist() == [df.index[5]]
    assert pd.to_numeric(history['next_day_move_pct']).notnull().all()


def test_data_summary(earnings_df):
    summary = get_data_summary(earnings_df)

    assert summary['shape'] == (120, 11)
    assert 'rsi' in summary['statistics']
    assert summary['categories']['industry'] == 3
    assert 'date' not in summary['categories']
