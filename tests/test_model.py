"""
Unit tests for CatBoost training, cross-validation and evaluation.
"""

import numpy as np
import pandas as pd
import pytest
from catboost import CatBoostRegressor

from geohousing.model import (
    compute_baselines,
    compute_metrics,
    compute_residuals,
    compute_rmse,
    cross_validate_model,
    fit_feature_set,
    get_hyperparameters,
    load_model_artifact,
    save_model_artifact,
    train_catboost_model,
)


@pytest.fixture
def regression_data():
    rng = np.random.default_rng(0)
    n = 200
    X = pd.DataFrame({
        "GrLivArea": rng.normal(1500, 400, n),
        "OverallQual": rng.integers(3, 10, n).astype(float),
        "easting": rng.normal(446000, 2000, n),
    })
    y = pd.Series(50 * X["GrLivArea"] + 12000 * X["OverallQual"] + rng.normal(0, 5000, n))
    return X, y


@pytest.fixture
def noise_data():
    rng = np.random.default_rng(1)
    X = pd.DataFrame(rng.normal(size=(200, 5)), columns=[f"x{i}" for i in range(5)])
    y = pd.Series(rng.normal(size=200))
    return X, y


class TestHyperparameters:
    def test_defaults(self):
        params = get_hyperparameters()
        assert params["learning_rate"] == 0.05
        assert params["depth"] == 4
        assert params["subsample"] == 0.8
        assert params["iterations"] == 2000

    def test_overrides_do_not_mutate_defaults(self):
        params = get_hyperparameters({"depth": 6})
        assert params["depth"] == 6
        assert get_hyperparameters()["depth"] == 4


class TestMetrics:
    def test_rmse(self):
        assert compute_rmse([1.0, 2.0, 3.0], [1.0, 2.0, 5.0]) == pytest.approx(np.sqrt(4 / 3))

    def test_compute_metrics(self):
        metrics = compute_metrics(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0, 3.0]), verbose=False)
        assert metrics == {"rmse": 0.0, "mae": 0.0, "r2": 1.0}


class TestCrossValidation:
    def test_one_rmse_per_fold(self, regression_data, fast_hyperparameters):
        X, y = regression_data
        cv = cross_validate_model(X, y, n_folds=4, hyperparameters=fast_hyperparameters,
                                  early_stopping_rounds=20, verbose=False)

        assert len(cv["fold_rmse"]) == 4
        assert len(cv["best_iterations"]) == 4
        assert cv["mean_rmse"] == pytest.approx(np.mean(cv["fold_rmse"]))
        assert list(cv["curve"].columns) == ["iteration", "test-RMSE-mean", "test-RMSE-std"]
        assert len(cv["curve"]) == min(cv["rounds_trained"])

    def test_early_stopping_halts_before_max_rounds(self, noise_data):
        X, y = noise_data
        params = get_hyperparameters({"iterations": 1000, "learning_rate": 0.3, "depth": 6, "thread_count": 1})

        cv = cross_validate_model(X, y, n_folds=3, hyperparameters=params,
                                  early_stopping_rounds=10, verbose=False)

        assert all(rounds < 1000 for rounds in cv["rounds_trained"])
        assert len(cv["curve"]) == min(cv["rounds_trained"])
        assert cv["curve"].notna().all().all()
        # every row still averages all three folds
        assert (cv["curve"]["test-RMSE-std"] > 0).all()
        for best, rounds in zip(cv["best_iterations"], cv["rounds_trained"]):
            assert best < rounds <= best + 11

    def test_seeded_cv_is_reproducible(self, regression_data, fast_hyperparameters):
        X, y = regression_data
        first = cross_validate_model(X, y, n_folds=3, hyperparameters=fast_hyperparameters,
                                     early_stopping_rounds=20, verbose=False)
        second = cross_validate_model(X, y, n_folds=3, hyperparameters=fast_hyperparameters,
                                      early_stopping_rounds=20, verbose=False)
        assert first["fold_rmse"] == second["fold_rmse"]


class TestTraining:
    def test_fixed_rounds_without_validation(self, regression_data, fast_hyperparameters):
        X, y = regression_data
        model = train_catboost_model(X, y, hyperparameters=dict(fast_hyperparameters, iterations=37))
        assert isinstance(model, CatBoostRegressor)
        assert model.tree_count_ == 37

    def test_residuals(self, regression_data, fast_hyperparameters):
        X, y = regression_data
        model = train_catboost_model(X, y, hyperparameters=fast_hyperparameters)
        residuals = compute_residuals(model, X.iloc[:10], y.iloc[:10])
        assert list(residuals.columns) == ["actual", "predicted", "residual"]
        assert np.allclose(residuals["actual"] - residuals["predicted"], residuals["residual"])


class TestBaselines:
    def test_neighborhood_median_falls_back_to_global(self):
        train = pd.DataFrame({"neighborhood_key": ["a", "a", "b"], "SalePrice": [100.0, 300.0, 1000.0]})
        test = pd.DataFrame({"neighborhood_key": ["a", "c"], "SalePrice": [200.0, 300.0]})

        baselines = compute_baselines(train, test, verbose=False)

        # global median 300; group medians a=200, unseen c -> 300
        assert baselines["global_median"]["rmse"] == pytest.approx(np.sqrt((100 ** 2 + 0) / 2))
        assert baselines["neighborhood_median"]["rmse"] == 0.0


class TestFitFeatureSet:
    @pytest.fixture
    def matrices(self, regression_data):
        X, y = regression_data
        return {
            "X_train": X.iloc[:160].reset_index(drop=True),
            "y_train": y.iloc[:160].reset_index(drop=True),
            "X_test": X.iloc[160:].reset_index(drop=True),
            "y_test": y.iloc[160:].reset_index(drop=True),
        }

    def test_final_model_uses_cv_rounds(self, matrices, fast_hyperparameters):
        run = fit_feature_set("coordinates", matrices, hyperparameters=fast_hyperparameters,
                              n_folds=3, early_stopping_rounds=20, verbose=False)

        assert run["n_rounds"] == int(round(np.mean(run["cv"]["best_iterations"]))) + 1
        assert run["model"].tree_count_ == run["n_rounds"]
        assert len(run["residuals"]) == 40
        assert run["metrics"]["rmse"] == pytest.approx(compute_rmse(matrices["y_test"], run["model"].predict(matrices["X_test"])))
        assert set(run["feature_importance"]["feature"]) == {"GrLivArea", "OverallQual", "easting"}

    def test_artifact_keeps_models_and_metrics(self, tmp_path, matrices, fast_hyperparameters):
        run = fit_feature_set("coordinates", matrices, hyperparameters=fast_hyperparameters,
                              n_folds=3, early_stopping_rounds=20, verbose=False)
        path = tmp_path / "models" / "comparison.joblib"

        save_model_artifact({"coordinates": run}, {"random_seed": 42}, str(path))
        artifact = load_model_artifact(str(path))

        assert artifact["metrics"]["coordinates"] == run["metrics"]
        assert artifact["preprocessing_metadata"] == {"random_seed": 42}
        assert np.allclose(artifact["models"]["coordinates"].predict(matrices["X_test"]),
                           run["model"].predict(matrices["X_test"]))
