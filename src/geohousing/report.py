"""
Neighborhood geocoding report.

Runs the whole analysis end to end:
1. Load housing rows and the neighborhood lookup
2. Geocode each neighborhood (memoized, failures skipped)
3. Reproject centroids to UTM and join them onto housing rows
4. Split, impute and build both design matrices
5. Cross-validate, train and evaluate both CatBoost models plus baselines
6. Print the comparison and draw the figures

Usage:
    export GOOGLE_MAPS_API_KEY='your-api-key-here'
    geohousing-report --housing data/all_data.csv --neighborhoods data/neighborhoods.tsv
"""

import argparse
import logging
from typing import Any, Dict, List, Optional

import matplotlib.pyplot as plt

from geohousing import config, data_loader, plotting, preprocessing, spatial
from geohousing.config import MissingApiKeyError
from geohousing.geocoding import CachedGeocoder, GoogleGeocoder, geocode_neighborhoods
from geohousing.model import compute_baselines, fit_feature_set, get_hyperparameters, save_model_artifact
from geohousing.spatial import NoCoordinatesError

logger = logging.getLogger(__name__)


def run_report(
    housing_path=config.HOUSING_DATA_PATH,
    lookup_path=config.NEIGHBORHOOD_LOOKUP_PATH,
    geocoder: CachedGeocoder = None,
    target_crs: str = config.TARGET_CRS,
    test_size: float = config.TEST_SIZE,
    random_seed: int = config.RANDOM_SEED,
    n_folds: int = config.CV_FOLDS,
    early_stopping_rounds: int = config.EARLY_STOPPING_ROUNDS,
    hyperparameters: Dict[str, Any] = None,
    log_transform_target: bool = False,
    verbose: bool = True
) -> Dict[str, Any]:
    """
    Run the full comparison.

    Args:
        housing_path: Housing CSV
        lookup_path: Neighborhood lookup TSV
        geocoder: Memoizing geocoder; built from the environment API key if None
        target_crs: Planar CRS for coordinates
        test_size: Held-out fraction
        random_seed: Seed for split, folds and models
        n_folds: Cross-validation folds
        early_stopping_rounds: Cross-validation patience
        hyperparameters: Overrides on top of the default hyperparameters
        log_transform_target: Model log1p(SalePrice)
        verbose: Print progress and summaries

    Returns:
        Dictionary with every intermediate table, the preprocessing output,
        baselines and one run per feature set
    """
    hyperparameters = get_hyperparameters(dict(hyperparameters or {}, random_seed=random_seed))

    if verbose:
        print("=" * 80)
        print("NEIGHBORHOOD GEOCODING REPORT")
        print("=" * 80)
        print("\n[1/5] Loading data...")
    housing = data_loader.load_housing_data(housing_path, verbose=verbose)
    housing = data_loader.filter_training_rows(housing, verbose=verbose)
    neighborhoods = data_loader.load_neighborhood_lookup(lookup_path, verbose=verbose)

    if verbose:
        print("\n[2/5] Geocoding neighborhoods...")
    if geocoder is None:
        geocoder = CachedGeocoder(GoogleGeocoder.from_environment())
    geocoded = geocode_neighborhoods(neighborhoods, geocoder, verbose=verbose)

    if verbose:
        print("\n[3/5] Joining planar coordinates...")
    coordinates = spatial.build_neighborhood_coordinates(geocoded, target_crs=target_crs, verbose=verbose)
    joined = spatial.join_coordinates(housing, coordinates, verbose=verbose)
    spatial.require_coordinates(geocoded, coordinates, joined)

    if verbose:
        print("\n[4/5] Preprocessing...")
    prepared = preprocessing.run_full_preprocessing_pipeline(
        joined,
        test_size=test_size,
        random_seed=random_seed,
        log_transform_target=log_transform_target,
        verbose=verbose,
    )

    if verbose:
        print("\n[5/5] Training and evaluating models...")
    # Baselines are scored in price units, not comparable to log-space models
    baselines = None
    if not log_transform_target:
        baselines = compute_baselines(prepared['train_df'], prepared['test_df'], verbose=verbose)

    runs = {}
    for feature_set in preprocessing.FEATURE_SETS:
        runs[feature_set] = fit_feature_set(
            feature_set,
            prepared['matrices'][feature_set],
            hyperparameters=hyperparameters,
            n_folds=n_folds,
            early_stopping_rounds=early_stopping_rounds,
            random_seed=random_seed,
            verbose=verbose,
        )

    if verbose:
        print_summary(runs, baselines)

    return {
        'housing': housing,
        'neighborhoods': geocoded,
        'coordinates': coordinates,
        'joined': joined,
        'prepared': prepared,
        'baselines': baselines,
        'runs': runs,
        'geocoder': geocoder,
    }


def print_summary(runs: Dict[str, Dict[str, Any]], baselines: Optional[Dict[str, Dict[str, float]]] = None) -> None:
    print("\n" + "=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"\n{'Model':<22} {'CV RMSE':>14} {'CV std':>12} {'Rounds':>8} {'Test RMSE':>14} {'Test R²':>9}")
    for name, run in runs.items():
        cv = run['cv']
        print(f"{name:<22} {cv['mean_rmse']:>14,.2f} {cv['std_rmse']:>12,.2f} "
              f"{run['n_rounds']:>8} {run['metrics']['rmse']:>14,.2f} {run['metrics']['r2']:>9.4f}")
    if baselines:
        for name, metrics in baselines.items():
            print(f"{name:<22} {'':>14} {'':>12} {'':>8} {metrics['rmse']:>14,.2f} {metrics['r2']:>9.4f}")

    ranked = sorted(runs.values(), key=lambda run: run['metrics']['rmse'])
    if len(ranked) > 1:
        best, runner_up = ranked[0], ranked[1]
        gain = (runner_up['metrics']['rmse'] - best['metrics']['rmse']) / runner_up['metrics']['rmse'] * 100
        print(f"\nBest held-out model: {best['name']} ({gain:.1f}% lower RMSE than {runner_up['name']})")

    for name, run in runs.items():
        print(f"\nTop features ({name}):")
        for row in run['feature_importance'].head(5).itertuples(index=False):
            print(f"  {row.feature:<30} {row.importance:6.2f}")


def build_figures(report: Dict[str, Any]) -> Dict[str, Any]:
    runs = report['runs']
    return {
        'price_by_neighborhood': plotting.plot_price_by_neighborhood(report['joined']),
        'neighborhood_map': plotting.plot_neighborhood_map(report['coordinates'], report['joined']),
        'cv_curves': plotting.plot_cv_curves({name: run['cv'] for name, run in runs.items()}),
        'residuals': plotting.plot_residuals({name: run['residuals'] for name, run in runs.items()}),
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compare neighborhood categories against geocoded coordinates for sale price models"
    )
    parser.add_argument('--housing', default=str(config.HOUSING_DATA_PATH),
                        help="Housing CSV (default: all_data.csv in $GEOHOUSING_DATA_DIR or the project data/)")
    parser.add_argument('--neighborhoods', default=str(config.NEIGHBORHOOD_LOOKUP_PATH),
                        help="Neighborhood abbreviation lookup (TSV)")
    parser.add_argument('--crs', default=config.TARGET_CRS, help="Planar target CRS")
    parser.add_argument('--test-size', type=float, default=config.TEST_SIZE)
    parser.add_argument('--seed', type=int, default=config.RANDOM_SEED)
    parser.add_argument('--folds', type=int, default=config.CV_FOLDS)
    parser.add_argument('--early-stopping', type=int, default=config.EARLY_STOPPING_ROUNDS)
    parser.add_argument('--iterations', type=int, help="Maximum boosting rounds (default 2000)")
    parser.add_argument('--log-target', action='store_true', help="Model log1p(SalePrice)")
    parser.add_argument('--figures-dir', help="Write figures as PNG instead of showing them")
    parser.add_argument('--no-plots', action='store_true', help="Skip figures")
    parser.add_argument('--save-artifact', help="Write models and metrics to this joblib file")
    parser.add_argument('--log-level', default='WARNING', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        geocoder = CachedGeocoder(GoogleGeocoder.from_environment())
    except MissingApiKeyError as exc:
        print(f"\n❌ ERROR: {exc}")
        print(f"   export {config.API_KEY_ENV_VAR}='your-api-key-here'")
        return 1

    hyperparameters = {'iterations': args.iterations} if args.iterations else None

    try:
        report = run_report(
            housing_path=args.housing,
            lookup_path=args.neighborhoods,
            geocoder=geocoder,
            target_crs=args.crs,
            test_size=args.test_size,
            random_seed=args.seed,
            n_folds=args.folds,
            early_stopping_rounds=args.early_stopping,
            hyperparameters=hyperparameters,
            log_transform_target=args.log_target,
        )
    except NoCoordinatesError as exc:
        print(f"\n❌ ERROR: {exc}")
        return 1

    if args.save_artifact:
        save_model_artifact(
            report['runs'],
            report['prepared']['preprocessing_metadata'],
            args.save_artifact,
            baselines=report['baselines'],
        )

    if not args.no_plots:
        figures = build_figures(report)
        if args.figures_dir:
            plotting.save_figures(figures, args.figures_dir)
        else:
            plt.show()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
