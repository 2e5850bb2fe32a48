"""
Data Preprocessing Module for the Neighborhood Model Comparison

Builds the design matrices for the two competing feature sets:
1. "neighborhood": neighborhood identity one-hot encoded, no coordinates
2. "coordinates":  planar easting/northing as continuous features, no identity

CRITICAL: Both feature sets are built from the SAME random train/test split of
the SAME joined rows, so their held-out RMSEs are directly comparable. All
statistics (imputation values, one-hot columns) come from the training split
only.
"""

from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from geohousing import config
from geohousing.spatial import COORDINATE_COLUMNS

FEATURE_SET_NEIGHBORHOOD = 'neighborhood'
FEATURE_SET_COORDINATES = 'coordinates'
FEATURE_SETS = (FEATURE_SET_NEIGHBORHOOD, FEATURE_SET_COORDINATES)

# Never used as model inputs
NON_FEATURE_COLUMNS = [config.ID_COLUMN, config.TRAIN_FLAG_COLUMN]


def random_split(
    df: pd.DataFrame,
    test_size: float = config.TEST_SIZE,
    random_seed: int = config.RANDOM_SEED,
    verbose: bool = True
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split rows into train/test partitions by seeded random assignment.

    Args:
        df: Joined housing rows
        test_size: Fraction held out for testing
        random_seed: Seed for reproducible assignment

    Returns:
        train_df, test_df
    """
    train_df, test_df = train_test_split(df, test_size=test_size, random_state=random_seed, shuffle=True)
    train_df = train_df.reset_index(drop=True)
    test_df = test_df.reset_index(drop=True)

    if verbose:
        n = len(df)
        print(f"\nRandom Split (seed={random_seed}):")
        print(f"  Train: {len(train_df):,} rows ({len(train_df)/n*100:.1f}%)")
        print(f"  Test:  {len(test_df):,} rows ({len(test_df)/n*100:.1f}%)")

    return train_df, test_df


def handle_missing_values(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame = None,
    target_col: str = config.TARGET_COLUMN,
    numeric_impute_strategy: str = 'median'
) -> Tuple[pd.DataFrame, pd.DataFrame, Dict[str, Any]]:
    """
    Handle missing values using training set statistics only.

    Categorical: Fill with "Unknown" (in this dataset NA usually means the
    feature is absent, e.g. no pool or no alley access)
    Numeric: Fill with median (computed on train only)

    Args:
        train_df: Training DataFrame
        test_df: Test DataFrame (optional)
        target_col: Target column, never imputed
        numeric_impute_strategy: 'median' or 'mean'

    Returns:
        train_df, test_df, imputation_values
    """
    imputation_values = {}

    categorical_cols = train_df.select_dtypes(include=['object', 'category']).columns.tolist()
    for col in categorical_cols:
        imputation_values[col] = 'Unknown'

    numeric_cols = train_df.select_dtypes(include=[np.number]).columns.tolist()
    if target_col in numeric_cols:
        numeric_cols.remove(target_col)

    for col in numeric_cols:
        if numeric_impute_strategy == 'median':
            value = train_df[col].median()
        else:
            value = train_df[col].mean()
        # All-missing training column
        imputation_values[col] = 0.0 if pd.isna(value) else value

    def apply_imputation(df):
        df = df.copy()

        for col in categorical_cols:
            if col in df.columns:
                df[col] = df[col].astype(object).where(df[col].notna(), 'Unknown')
                df[col] = df[col].replace('', 'Unknown').astype(str)

        for col in numeric_cols:
            if col in df.columns:
                df[col] = df[col].fillna(imputation_values[col])

        return df

    train_df = apply_imputation(train_df)
    test_df = apply_imputation(test_df) if test_df is not None else None

    return train_df, test_df, imputation_values


def select_feature_set(df: pd.DataFrame, feature_set: str) -> pd.DataFrame:
    """
    Drop the location columns that do not belong to `feature_set`.

    The raw `Neighborhood` column is always dropped: the "neighborhood" set
    uses the case-normalized key instead, so "NAmes" and "names" are one level.
    """
    if feature_set not in FEATURE_SETS:
        raise ValueError(f"Unknown feature set '{feature_set}', expected one of {FEATURE_SETS}")

    drop_cols = [config.NEIGHBORHOOD_COLUMN]
    if feature_set == FEATURE_SET_NEIGHBORHOOD:
        drop_cols += COORDINATE_COLUMNS
    else:
        drop_cols += [config.NEIGHBORHOOD_KEY_COLUMN]

    return df.drop(columns=[c for c in drop_cols if c in df.columns])


def prepare_features_and_target(
    df: pd.DataFrame,
    target_col: str = config.TARGET_COLUMN,
    log_transform_target: bool = False,
    drop_cols: List[str] = None
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Prepare feature table and target vector.

    Args:
        df: Input DataFrame with all features
        target_col: Name of target column (default: 'SalePrice')
        log_transform_target: Whether to apply log1p to target. Off by
            default so RMSE is reported in sale-price units.
        drop_cols: Identifier columns to drop

    Returns:
        X (features), y (target)
    """
    if drop_cols is None:
        drop_cols = NON_FEATURE_COLUMNS

    y = df[target_col].astype(float).copy()
    if log_transform_target:
        y = np.log1p(y)

    drop_cols_final = list(drop_cols) + [target_col]
    X = df.drop(columns=[c for c in drop_cols_final if c in df.columns])

    return X, y


def one_hot_encode(
    X_train: pd.DataFrame,
    X_test: pd.DataFrame = None
) -> Tuple[pd.DataFrame, pd.DataFrame, List[str]]:
    """
    One-hot encode categorical columns with the column set fitted on train.

    Test levels never seen in training get all-zero indicator columns; train
    indicator columns missing from test are added as zeros.

    Returns:
        X_train, X_test, feature_order
    """
    categorical_cols = X_train.select_dtypes(include=['object', 'category']).columns.tolist()

    X_train = pd.get_dummies(X_train, columns=categorical_cols, dtype=np.uint8)
    feature_order = X_train.columns.tolist()

    if X_test is not None:
        X_test = pd.get_dummies(X_test, columns=[c for c in categorical_cols if c in X_test.columns], dtype=np.uint8)
        X_test = X_test.reindex(columns=feature_order, fill_value=0)

    return X_train, X_test, feature_order


def build_design_matrices(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    feature_set: str,
    log_transform_target: bool = False
) -> Dict[str, Any]:
    """
    Build the train/test design matrices for one feature set.

    Returns:
        Dictionary with X_train, y_train, X_test, y_test and feature_order
    """
    train_df = select_feature_set(train_df, feature_set)
    test_df = select_feature_set(test_df, feature_set)

    X_train, y_train = prepare_features_and_target(train_df, log_transform_target=log_transform_target)
    X_test, y_test = prepare_features_and_target(test_df, log_transform_target=log_transform_target)

    X_train, X_test, feature_order = one_hot_encode(X_train, X_test)

    return {
        'X_train': X_train,
        'y_train': y_train,
        'X_test': X_test,
        'y_test': y_test,
        'feature_order': feature_order,
    }


# ==================== COMPLETE PREPROCESSING PIPELINE ====================

def run_full_preprocessing_pipeline(
    df: pd.DataFrame,
    test_size: float = config.TEST_SIZE,
    random_seed: int = config.RANDOM_SEED,
    log_transform_target: bool = False,
    verbose: bool = True
) -> Dict[str, Any]:
    """
    Run the complete preprocessing pipeline for both feature sets.

    Steps:
    1. Random train/test split
    2. Handle missing values (train statistics)
    3. Build design matrices per feature set

    Args:
        df: Housing rows already joined with planar coordinates
        test_size: Held-out fraction
        random_seed: Split seed
        log_transform_target: Model log1p(SalePrice) instead of SalePrice
        verbose: Print progress

    Returns:
        Dictionary containing:
        - train_df, test_df (imputed, all columns; used for baselines)
        - matrices: {feature_set: design matrices dict}
        - preprocessing_metadata
    """
    if verbose:
        print("=" * 80)
        print("RUNNING PREPROCESSING PIPELINE")
        print("=" * 80)
        print("\n[1/3] Splitting data...")
    train_df, test_df = random_split(df, test_size=test_size, random_seed=random_seed, verbose=verbose)

    if verbose:
        print("\n[2/3] Handling missing values...")
    train_df, test_df, imputation_values = handle_missing_values(train_df, test_df)

    if verbose:
        print("\n[3/3] Building design matrices...")
    matrices = {}
    for feature_set in FEATURE_SETS:
        matrices[feature_set] = build_design_matrices(
            train_df, test_df, feature_set, log_transform_target=log_transform_target
        )
        if verbose:
            X_train = matrices[feature_set]['X_train']
            print(f"  {feature_set:<13} {X_train.shape[0]:,} rows × {X_train.shape[1]} features")

    preprocessing_metadata = {
        'test_size': test_size,
        'random_seed': random_seed,
        'log_transform_target': log_transform_target,
        'imputation_values': imputation_values,
        'feature_order': {fs: m['feature_order'] for fs, m in matrices.items()},
    }

    return {
        'train_df': train_df,
        'test_df': test_df,
        'matrices': matrices,
        'preprocessing_metadata': preprocessing_metadata,
    }
