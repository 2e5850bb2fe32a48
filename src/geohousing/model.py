"""
Model Training Module for the Neighborhood Model Comparison

This module handles:
1. CatBoost gradient-boosted regression with fixed hyperparameters
2. k-fold cross-validation with early stopping (RMSE per fold + error curve)
3. Held-out evaluation (RMSE, MAE, R²) and residuals
4. Median baselines for context
5. Model artifact serialization with joblib

Key Technical Decisions:
- Model: CatBoost with RMSE loss on one-hot encoded design matrices, so the
  two feature sets differ only in how location is represented
- Number of rounds for the final model is chosen by cross-validation
- Fixed random seed for reproducibility
"""

import os
from typing import Any, Dict, List

import joblib
import numpy as np
import pandas as pd
from catboost import CatBoostRegressor, Pool
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import KFold

from geohousing import config

EVAL_METRIC = 'RMSE'


def get_hyperparameters(overrides: Dict[str, Any] = None) -> Dict[str, Any]:
    """Default hyperparameters with `overrides` applied on top."""
    hyperparameters = dict(config.DEFAULT_HYPERPARAMETERS)
    if overrides:
        hyperparameters.update(overrides)
    return hyperparameters


def train_catboost_model(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    X_val: pd.DataFrame = None,
    y_val: pd.Series = None,
    hyperparameters: Dict[str, Any] = None,
    early_stopping_rounds: int = None
) -> CatBoostRegressor:
    """
    Train a CatBoost regression model.

    With a validation set, training stops once validation RMSE has not
    improved for `early_stopping_rounds` rounds and the model is shrunk to its
    best iteration. Without one, exactly `iterations` rounds are fitted.

    Args:
        X_train: Training design matrix
        y_train: Training target
        X_val: Validation design matrix (optional)
        y_val: Validation target (optional)
        hyperparameters: Full hyperparameter dict (defaults if None)
        early_stopping_rounds: Patience in rounds (requires a validation set)

    Returns:
        Trained CatBoostRegressor
    """
    if hyperparameters is None:
        hyperparameters = get_hyperparameters()

    model = CatBoostRegressor(**hyperparameters)
    train_pool = Pool(data=X_train, label=y_train)

    if X_val is not None and y_val is not None:
        val_pool = Pool(data=X_val, label=y_val)
        model.fit(
            train_pool,
            eval_set=val_pool,
            early_stopping_rounds=early_stopping_rounds,
            use_best_model=True,
        )
    else:
        model.fit(train_pool)

    return model


def compute_rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def cross_validate_model(
    X: pd.DataFrame,
    y: pd.Series,
    n_folds: int = config.CV_FOLDS,
    hyperparameters: Dict[str, Any] = None,
    early_stopping_rounds: int = config.EARLY_STOPPING_ROUNDS,
    random_seed: int = config.RANDOM_SEED,
    name: str = "model",
    verbose: bool = True
) -> Dict[str, Any]:
    """
    Estimate out-of-sample RMSE with shuffled k-fold cross-validation.

    Every fold trains with early stopping against its own validation fold.

    Args:
        X: Design matrix (training split only)
        y: Target
        n_folds: Number of folds
        hyperparameters: Model hyperparameters
        early_stopping_rounds: Patience in rounds
        random_seed: Fold assignment seed
        name: Label for printing

    Returns:
        Dictionary with:
        - fold_rmse: one RMSE per fold
        - best_iterations: best iteration index per fold
        - rounds_trained: rounds actually run per fold
        - mean_rmse, std_rmse
        - curve: DataFrame (iteration, test-RMSE-mean, test-RMSE-std) over
          all folds, truncated to the shortest fold
    """
    if hyperparameters is None:
        hyperparameters = get_hyperparameters()

    kfold = KFold(n_splits=n_folds, shuffle=True, random_state=random_seed)

    fold_rmse: List[float] = []
    best_iterations: List[int] = []
    rounds_trained: List[int] = []
    curves = {}

    for fold, (train_idx, val_idx) in enumerate(kfold.split(X), 1):
        X_fold_train, X_fold_val = X.iloc[train_idx], X.iloc[val_idx]
        y_fold_train, y_fold_val = y.iloc[train_idx], y.iloc[val_idx]

        model = train_catboost_model(
            X_fold_train, y_fold_train, X_fold_val, y_fold_val,
            hyperparameters=hyperparameters,
            early_stopping_rounds=early_stopping_rounds,
        )

        curve = model.get_evals_result()['validation'][EVAL_METRIC]
        curves[f'fold_{fold}'] = pd.Series(curve, dtype=float)

        fold_rmse.append(compute_rmse(y_fold_val, model.predict(X_fold_val)))
        best_iterations.append(int(model.get_best_iteration()))
        rounds_trained.append(len(curve))

        if verbose:
            print(f"  Fold {fold}/{n_folds}: RMSE {fold_rmse[-1]:,.2f} "
                  f"(best iteration {best_iterations[-1]}, {rounds_trained[-1]} rounds)")

    # Folds stop at different rounds; keep only the rounds every fold reached
    curve_df = pd.DataFrame(curves).iloc[:min(rounds_trained)]
    curve_summary = pd.DataFrame({
        'iteration': np.arange(len(curve_df)),
        'test-RMSE-mean': curve_df.mean(axis=1).values,
        'test-RMSE-std': curve_df.std(axis=1, ddof=0).values,
    })

    results = {
        'fold_rmse': fold_rmse,
        'best_iterations': best_iterations,
        'rounds_trained': rounds_trained,
        'mean_rmse': float(np.mean(fold_rmse)),
        'std_rmse': float(np.std(fold_rmse)),
        'curve': curve_summary,
    }

    if verbose:
        print(f"{name} CV RMSE: {results['mean_rmse']:,.2f} ± {results['std_rmse']:,.2f} ({n_folds} folds)")

    return results


def compute_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    dataset_name: str = "Dataset",
    verbose: bool = True
) -> Dict[str, float]:
    """
    Compute regression metrics.

    Metrics:
    - RMSE: Root mean squared error (the comparison metric)
    - MAE: Mean absolute error
    - R² Score: Proportion of variance explained

    Returns:
        Dictionary with metrics
    """
    metrics = {
        'rmse': compute_rmse(y_true, y_pred),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2_score(y_true, y_pred)),
    }

    if verbose:
        print(f"\n{dataset_name.upper()} METRICS")
        print(f"  RMSE: {metrics['rmse']:,.2f}")
        print(f"  MAE:  {metrics['mae']:,.2f}")
        print(f"  R²:   {metrics['r2']:.4f}")

    return metrics


def compute_residuals(model: CatBoostRegressor, X: pd.DataFrame, y: pd.Series) -> pd.DataFrame:
    """Held-out predictions and residuals (actual - predicted)."""
    predicted = model.predict(X)
    actual = np.asarray(y, dtype=float)
    return pd.DataFrame({
        'actual': actual,
        'predicted': predicted,
        'residual': actual - predicted,
    }, index=X.index)


def compute_baselines(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    target_col: str = config.TARGET_COLUMN,
    group_col: str = config.NEIGHBORHOOD_KEY_COLUMN,
    verbose: bool = True
) -> Dict[str, Dict[str, float]]:
    """
    Score two median baselines on the held-out split.

    1. Global median of the training target
    2. Per-neighborhood training median, falling back to the global median
    """
    y_test = test_df[target_col].values.astype(float)

    global_median = train_df[target_col].median()
    global_pred = np.full(len(y_test), global_median, dtype=float)

    group_medians = train_df.groupby(group_col)[target_col].median()
    group_pred = test_df[group_col].map(group_medians).fillna(global_median).values.astype(float)

    return {
        'global_median': compute_metrics(y_test, global_pred, "Global median baseline", verbose=verbose),
        'neighborhood_median': compute_metrics(y_test, group_pred, "Neighborhood median baseline", verbose=verbose),
    }


def get_feature_importance(
    model: CatBoostRegressor,
    X_train: pd.DataFrame,
    top_n: int = 20
) -> pd.DataFrame:
    """
    Extract feature importance (PredictionValuesChange) from a trained model.

    Returns:
        DataFrame with features sorted by importance
    """
    importance_df = pd.DataFrame({
        'feature': X_train.columns,
        'importance': model.get_feature_importance(),
    }).sort_values('importance', ascending=False)

    return importance_df.head(top_n).reset_index(drop=True)


def fit_feature_set(
    name: str,
    matrices: Dict[str, Any],
    hyperparameters: Dict[str, Any] = None,
    n_folds: int = config.CV_FOLDS,
    early_stopping_rounds: int = config.EARLY_STOPPING_ROUNDS,
    random_seed: int = config.RANDOM_SEED,
    verbose: bool = True
) -> Dict[str, Any]:
    """
    Cross-validate, train and evaluate one feature set.

    The final model is fitted on the whole training split with the mean best
    round count from cross-validation, then scored on the held-out split.

    Args:
        name: Feature set name, for printing
        matrices: Output of preprocessing.build_design_matrices

    Returns:
        Dictionary with model, cv, n_rounds, metrics, residuals,
        feature_importance
    """
    if hyperparameters is None:
        hyperparameters = get_hyperparameters()

    if verbose:
        print("\n" + "=" * 80)
        print(f"MODEL: {name}")
        print("=" * 80)
        print(f"Design matrix: {matrices['X_train'].shape[1]} features")
        print(f"\nCross-validating ({n_folds} folds, early stopping after {early_stopping_rounds} rounds)...")

    cv = cross_validate_model(
        matrices['X_train'], matrices['y_train'],
        n_folds=n_folds,
        hyperparameters=hyperparameters,
        early_stopping_rounds=early_stopping_rounds,
        random_seed=random_seed,
        name=name,
        verbose=verbose,
    )

    n_rounds = int(round(np.mean(cv['best_iterations']))) + 1
    final_hyperparameters = dict(hyperparameters, iterations=n_rounds)

    if verbose:
        print(f"\nTraining final model with {n_rounds} rounds...")
    model = train_catboost_model(matrices['X_train'], matrices['y_train'], hyperparameters=final_hyperparameters)

    residuals = compute_residuals(model, matrices['X_test'], matrices['y_test'])
    metrics = compute_metrics(residuals['actual'].values, residuals['predicted'].values,
                              f"{name} held-out", verbose=verbose)

    return {
        'name': name,
        'model': model,
        'cv': cv,
        'n_rounds': n_rounds,
        'metrics': metrics,
        'residuals': residuals,
        'feature_importance': get_feature_importance(model, matrices['X_train']),
    }


def save_model_artifact(
    runs: Dict[str, Dict[str, Any]],
    preprocessing_metadata: Dict[str, Any],
    save_path: str,
    baselines: Dict[str, Dict[str, float]] = None
) -> None:
    """
    Save both trained models with their metrics and preprocessing metadata.

    Args:
        runs: {feature_set: output of fit_feature_set}
        preprocessing_metadata: From preprocessing pipeline
        save_path: Artifact path, e.g. 'models/comparison.joblib'
        baselines: Output of compute_baselines
    """
    model_dir = os.path.dirname(os.path.abspath(save_path))
    os.makedirs(model_dir, exist_ok=True)

    artifact = {
        'models': {name: run['model'] for name, run in runs.items()},
        'metrics': {name: run['metrics'] for name, run in runs.items()},
        'cv': {name: {k: v for k, v in run['cv'].items() if k != 'curve'} for name, run in runs.items()},
        'feature_importance': {name: run['feature_importance'] for name, run in runs.items()},
        'baselines': baselines,
        'preprocessing_metadata': preprocessing_metadata,
        'model_version': '1.0',
        'trained_at': pd.Timestamp.now(),
    }
    joblib.dump(artifact, save_path)

    size_mb = os.path.getsize(save_path) / (1024**2)
    print(f"\nModel artifact saved: {save_path} ({size_mb:.2f} MB)")


def load_model_artifact(artifact_path: str) -> Dict[str, Any]:
    """Load an artifact written by save_model_artifact."""
    artifact = joblib.load(artifact_path)
    print(f"Model artifact loaded from: {artifact_path}")
    print(f"Trained at: {artifact.get('trained_at', 'unknown')}")
    return artifact
