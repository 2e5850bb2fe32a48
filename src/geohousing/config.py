"""
Configuration for the neighborhood geocoding analysis.

All defaults live here as module-level constants so the report, the CLI and the
tests share a single source. Secrets (the geocoding API key) are read from the
environment only.
"""

import os
from pathlib import Path
from typing import Any, Dict

# ==================== PATHS ====================

# src/geohousing/config.py -> project root; GEOHOUSING_DATA_DIR overrides for installed copies
PROJECT_ROOT = Path(os.path.dirname(os.path.abspath(__file__))).parents[1]
DATA_DIR = Path(os.environ.get("GEOHOUSING_DATA_DIR", PROJECT_ROOT / "data"))
HOUSING_DATA_PATH = DATA_DIR / "all_data.csv"
NEIGHBORHOOD_LOOKUP_PATH = DATA_DIR / "neighborhoods.tsv"

# ==================== DATASET COLUMNS ====================

NEIGHBORHOOD_COLUMN = "Neighborhood"
NEIGHBORHOOD_KEY_COLUMN = "neighborhood_key"
TARGET_COLUMN = "SalePrice"
TRAIN_FLAG_COLUMN = "train_test"
ID_COLUMN = "Id"

# ==================== GEOCODING ====================

API_KEY_ENV_VAR = "GOOGLE_MAPS_API_KEY"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
REQUEST_TIMEOUT_SECONDS = 10
LOCALITY_QUALIFIER = "Ames, Iowa"

# "South & West of Iowa State University" is not a place name the API knows
ADDRESS_OVERRIDES = {
    "swisu": "Iowa State University, Ames, Iowa",
}

# Northpark Villa has no usable geocoded location
EXCLUDED_NEIGHBORHOODS = ("npkvill",)

# ==================== PROJECTION ====================

SOURCE_CRS = "EPSG:4326"
# WGS 84 / UTM zone 15N covers central Iowa
TARGET_CRS = "EPSG:32615"

# ==================== MODELLING ====================

RANDOM_SEED = 42
TEST_SIZE = 0.2
CV_FOLDS = 5
EARLY_STOPPING_ROUNDS = 50

DEFAULT_HYPERPARAMETERS: Dict[str, Any] = {
    'iterations': 2000,
    'learning_rate': 0.05,
    'depth': 4,
    'bootstrap_type': 'Bernoulli',
    'subsample': 0.8,
    'loss_function': 'RMSE',
    'eval_metric': 'RMSE',
    'random_seed': RANDOM_SEED,
    'allow_writing_files': False,
    'verbose': False,
}


class MissingApiKeyError(RuntimeError):
    """Raised when the geocoding API key is not configured."""


def get_api_key(env_var: str = API_KEY_ENV_VAR) -> str:
    """
    Read the geocoding API key from the environment.

    Raises:
        MissingApiKeyError: If the variable is unset or empty
    """
    api_key = os.environ.get(env_var, "").strip()
    if not api_key:
        raise MissingApiKeyError(
            f"Set the {env_var} environment variable to a geocoding API key"
        )
    return api_key
