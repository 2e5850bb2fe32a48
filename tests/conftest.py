"""
Geohousing - Pytest Configuration and Fixtures

Shared fixtures for all tests:
- Synthetic housing dataset and neighborhood lookup on disk
- Fake geocoding client returning canned API payloads
- Small, fast CatBoost hyperparameters
"""

from pathlib import Path
from typing import Any, Dict

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from geohousing.geocoding import CachedGeocoder, GeocodeResponse

# =============================================================================
# Canned geography
# =============================================================================

LOOKUP_ROWS = [
    ("CollgCr", "College Creek"),
    ("Names", "North Ames"),
    ("SWISU", "South & West of Iowa State University"),
    ("NPkVill", "Northpark Villa"),
    ("Edwards", "Edwards"),
    ("Gilbert", "Gilbert"),
]

# Spelling used by the housing dataset (note NAmes vs Names in the lookup)
HOUSING_NEIGHBORHOODS = ["CollgCr", "NAmes", "SWISU", "NPkVill", "Edwards", "Gilbert"]

CENTROIDS = {
    "College Creek, Ames, Iowa": (42.0220, -93.6850),
    "North Ames, Ames, Iowa": (42.0480, -93.6200),
    "Iowa State University, Ames, Iowa": (42.0267, -93.6465),
    "Edwards, Ames, Iowa": (42.0150, -93.6800),
    "Gilbert, Ames, Iowa": (42.1070, -93.6500),
}

LOCATION_PREMIUM = {
    "CollgCr": 40000,
    "NAmes": 0,
    "SWISU": -10000,
    "NPkVill": 5000,
    "Edwards": -20000,
    "Gilbert": 25000,
}

FAST_HYPERPARAMETERS = {
    'iterations': 200,
    'learning_rate': 0.1,
    'depth': 3,
    'thread_count': 1,
}


def ok_payload(address: str, lat: float, lng: float) -> Dict[str, Any]:
    """Single-match Google Geocoding payload."""
    return {
        "status": "OK",
        "results": [
            {
                "formatted_address": address,
                "geometry": {
                    "location": {"lat": lat, "lng": lng},
                    "location_type": "APPROXIMATE",
                    "viewport": {
                        "northeast": {"lat": lat + 0.01, "lng": lng + 0.01},
                        "southwest": {"lat": lat - 0.01, "lng": lng - 0.01},
                    },
                },
                "types": ["neighborhood", "political"],
            }
        ],
    }


class FakeGeocodingClient:
    """Stands in for GoogleGeocoder; records every address it is asked for."""

    def __init__(self, payloads: Dict[str, Any] = None):
        if payloads is None:
            payloads = {address: ok_payload(address, lat, lng) for address, (lat, lng) in CENTROIDS.items()}
        self.payloads = payloads
        self.calls = []

    def fetch(self, address: str) -> GeocodeResponse:
        self.calls.append(address)
        payload = self.payloads.get(address, {"status": "ZERO_RESULTS", "results": []})
        if isinstance(payload, Exception):
            raise payload
        return GeocodeResponse.model_validate(payload)


def make_housing_frame(n_labelled: int = 240, n_unlabelled: int = 30, seed: int = 0) -> pd.DataFrame:
    """Synthetic sales where price depends on size, quality, age and location."""
    rng = np.random.default_rng(seed)
    n = n_labelled + n_unlabelled

    neighborhood = rng.choice(HOUSING_NEIGHBORHOODS, size=n)
    living_area = rng.normal(1500, 400, n).clip(500)
    quality = rng.integers(3, 10, n)
    year_built = rng.integers(1920, 2010, n)
    lot_frontage = rng.normal(70, 20, n).round()
    lot_frontage[rng.random(n) < 0.1] = np.nan
    zoning = rng.choice(["RL", "RM", "FV"], size=n)
    alley = np.where(rng.random(n) < 0.2, "Grvl", None)

    premium = np.array([LOCATION_PREMIUM[h] for h in neighborhood])
    price = (20000 + living_area * 60 + quality * 15000 + (year_built - 1900) * 300
             + premium + rng.normal(0, 15000, n))

    train_test = np.array([1] * n_labelled + [0] * n_unlabelled)
    price[train_test == 0] = np.nan

    return pd.DataFrame({
        'Id': np.arange(1, n + 1),
        'MSZoning': zoning,
        'LotFrontage': lot_frontage,
        'Alley': alley,
        'Neighborhood': neighborhood,
        'OverallQual': quality,
        'YearBuilt': year_built,
        'GrLivArea': living_area.round(),
        'SalePrice': price.round(),
        'train_test': train_test,
    })


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def housing_frame() -> pd.DataFrame:
    return make_housing_frame()


@pytest.fixture
def housing_csv(tmp_path: Path, housing_frame: pd.DataFrame) -> Path:
    path = tmp_path / "all_data.csv"
    housing_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def lookup_tsv(tmp_path: Path) -> Path:
    path = tmp_path / "neighborhoods.tsv"
    lines = ["abbreviation\tname"] + [f"{abbr}\t{name}" for abbr, name in LOOKUP_ROWS]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def fake_client() -> FakeGeocodingClient:
    return FakeGeocodingClient()


@pytest.fixture
def geocoder(fake_client: FakeGeocodingClient) -> CachedGeocoder:
    return CachedGeocoder(fake_client)


@pytest.fixture
def fast_hyperparameters() -> Dict[str, Any]:
    from geohousing.model import get_hyperparameters

    return get_hyperparameters(FAST_HYPERPARAMETERS)
