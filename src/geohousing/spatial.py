"""
Spatial join of geocoded neighborhood centroids onto housing records.

Geographic WGS84 coordinates are reprojected to a planar UTM CRS so the model
sees easting/northing in metres instead of degrees.
"""

import logging
from functools import lru_cache
from typing import Tuple

import numpy as np
import pandas as pd
from pyproj import Transformer

from geohousing import config
from geohousing.geocoding import STATUS_OK

logger = logging.getLogger(__name__)

COORDINATE_COLUMNS = ['easting', 'northing']


@lru_cache(maxsize=8)
def get_transformer(source_crs: str = config.SOURCE_CRS, target_crs: str = config.TARGET_CRS) -> Transformer:
    # always_xy: inputs and outputs are (lon, lat) / (easting, northing)
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


def reproject(
    longitudes,
    latitudes,
    target_crs: str = config.TARGET_CRS,
    source_crs: str = config.SOURCE_CRS
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reproject geographic coordinates to the planar target CRS.

    Args:
        longitudes: Longitudes in degrees
        latitudes: Latitudes in degrees
        target_crs: Planar CRS, e.g. "EPSG:32615"
        source_crs: CRS of the inputs

    Returns:
        (eastings, northings) as float arrays
    """
    transformer = get_transformer(source_crs, target_crs)
    eastings, northings = transformer.transform(
        np.asarray(longitudes, dtype=float),
        np.asarray(latitudes, dtype=float),
    )
    return np.asarray(eastings, dtype=float), np.asarray(northings, dtype=float)


def build_neighborhood_coordinates(
    geocoded: pd.DataFrame,
    target_crs: str = config.TARGET_CRS,
    verbose: bool = True
) -> pd.DataFrame:
    """
    Keep neighborhoods with a valid centroid and add planar coordinates.

    Args:
        geocoded: Output of geocoding.geocode_neighborhoods
        target_crs: Planar CRS for easting/northing

    Returns:
        One row per resolved neighborhood: neighborhood_key, abbreviation,
        name, latitude, longitude, easting, northing
    """
    key = config.NEIGHBORHOOD_KEY_COLUMN
    valid = (
        (geocoded['geocode_status'] == STATUS_OK)
        & geocoded['latitude'].notna()
        & geocoded['longitude'].notna()
    )
    coords = geocoded.loc[valid, [key, 'abbreviation', 'name', 'latitude', 'longitude']].copy()

    eastings, northings = reproject(coords['longitude'].values, coords['latitude'].values, target_crs=target_crs)
    coords['easting'] = eastings
    coords['northing'] = northings

    finite = np.isfinite(coords['easting']) & np.isfinite(coords['northing'])
    if not finite.all():
        logger.warning("Dropping %d neighborhoods that do not project into %s: %s",
                       int((~finite).sum()), target_crs, coords.loc[~finite, key].tolist())
        coords = coords[finite]

    dropped = geocoded.loc[~geocoded[key].isin(coords[key]), key].tolist()
    if verbose:
        print(f"Neighborhood centroids in {target_crs}: {len(coords)} resolved, {len(dropped)} unresolved")
        if dropped:
            print(f"  Unresolved: {', '.join(dropped)}")

    return coords.reset_index(drop=True)


def join_coordinates(
    housing: pd.DataFrame,
    coordinates: pd.DataFrame,
    verbose: bool = True
) -> pd.DataFrame:
    """
    Attach neighborhood planar coordinates to every housing record.

    Records are matched on the case-insensitive neighborhood key. Records whose
    neighborhood has no valid geometry are dropped.

    Args:
        housing: Housing rows with a neighborhood_key column
        coordinates: Output of build_neighborhood_coordinates

    Returns:
        Housing rows with easting and northing columns, unresolved rows removed
    """
    key = config.NEIGHBORHOOD_KEY_COLUMN
    original_count = len(housing)

    joined = housing.merge(
        coordinates[[key] + COORDINATE_COLUMNS],
        on=key,
        how='left',
        validate='many_to_one',
    )

    unresolved = joined['easting'].isna() | joined['northing'].isna()
    if unresolved.any():
        dropped_counts = joined.loc[unresolved, key].value_counts()
        for neighborhood, count in dropped_counts.items():
            logger.info("Dropping %d rows in neighborhood '%s' (no coordinates)", count, neighborhood)
        if verbose:
            print(f"Dropped {int(unresolved.sum()):,} / {original_count:,} rows without coordinates: "
                  + ", ".join(f"{k} ({v})" for k, v in dropped_counts.items()))

    joined = joined[~unresolved].reset_index(drop=True)

    if verbose:
        print(f"Joined coordinates onto {len(joined):,} rows")

    return joined


class NoCoordinatesError(ValueError):
    """Raised when no housing record could be given coordinates."""


def require_coordinates(geocoded: pd.DataFrame, coordinates: pd.DataFrame, joined: pd.DataFrame) -> None:
    """
    Fail early when geocoding left nothing to model.

    Per-neighborhood failures are tolerated, but when every neighborhood fails
    (rejected key, exhausted quota) or no record matches a resolved
    neighborhood there is no data to train on.

    Raises:
        NoCoordinatesError: Naming the geocode statuses seen
    """
    if coordinates.empty:
        statuses = geocoded['geocode_status'].value_counts()
        summary = ", ".join(f"{status}×{count}" for status, count in statuses.items())
        raise NoCoordinatesError(f"No neighborhood could be geocoded (statuses: {summary})")
    if joined.empty:
        raise NoCoordinatesError(
            f"No housing rows matched the {len(coordinates)} geocoded neighborhoods: "
            + ", ".join(coordinates[config.NEIGHBORHOOD_KEY_COLUMN])
        )
