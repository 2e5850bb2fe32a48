"""
Data Loading Module

Reads the two inputs of the analysis:
1. The housing sale dataset (CSV with a train_test flag and SalePrice target)
2. The neighborhood abbreviation -> display name lookup (tab-separated)

Neighborhood abbreviations are matched case-insensitively everywhere: the
dataset spells North Ames "NAmes" while the lookup spells it "Names", so both
sides are reduced to a lower-cased `neighborhood_key` before any join.
"""

from pathlib import Path
from typing import Dict, Iterable, Union

import pandas as pd

from geohousing import config

PathLike = Union[str, Path]

REQUIRED_HOUSING_COLUMNS = (
    config.NEIGHBORHOOD_COLUMN,
    config.TARGET_COLUMN,
    config.TRAIN_FLAG_COLUMN,
)


def normalize_neighborhood_key(value) -> str:
    """Reduce a neighborhood abbreviation to its case-insensitive join key."""
    return str(value).strip().lower()


def _check_columns(df: pd.DataFrame, required: Iterable[str], source: str) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"{source} is missing required columns: {missing}")


def load_housing_data(path: PathLike = config.HOUSING_DATA_PATH, verbose: bool = True) -> pd.DataFrame:
    """
    Load the housing sale dataset.

    Args:
        path: CSV file with one row per property sale
        verbose: Print row counts

    Returns:
        DataFrame with an added `neighborhood_key` column

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a required column is missing
    """
    df = pd.read_csv(path)
    _check_columns(df, REQUIRED_HOUSING_COLUMNS, f"Housing dataset {path}")

    df = add_neighborhood_key(df)

    if verbose:
        n_train = int((df[config.TRAIN_FLAG_COLUMN] == 1).sum())
        print(f"Loaded {len(df):,} housing rows ({n_train:,} labelled training rows)")

    return df


def add_neighborhood_key(df: pd.DataFrame, column: str = config.NEIGHBORHOOD_COLUMN) -> pd.DataFrame:
    """Add the lower-cased `neighborhood_key` join column."""
    df = df.copy()
    df[config.NEIGHBORHOOD_KEY_COLUMN] = df[column].map(normalize_neighborhood_key)
    return df


def filter_training_rows(df: pd.DataFrame, flag_column: str = config.TRAIN_FLAG_COLUMN,
                         verbose: bool = True) -> pd.DataFrame:
    """
    Keep only labelled rows (train_test == 1) with a known sale price.

    The combined dataset also carries the unlabelled competition rows, which
    have no SalePrice and cannot be used for model evaluation.
    """
    original_count = len(df)
    df = df[df[flag_column] == 1]
    df = df[df[config.TARGET_COLUMN].notna()].copy()

    if verbose:
        print(f"Filtered {flag_column}: kept {len(df):,} / {original_count:,} rows")

    return df


def load_neighborhood_lookup(
    path: PathLike = config.NEIGHBORHOOD_LOOKUP_PATH,
    locality: str = config.LOCALITY_QUALIFIER,
    overrides: Dict[str, str] = None,
    excluded: Iterable[str] = None,
    verbose: bool = True
) -> pd.DataFrame:
    """
    Load the neighborhood lookup and build one record per neighborhood.

    Each record carries the search string sent to the geocoding API:
    "<display name>, <locality>" unless a manual override exists for the key.
    Neighborhoods listed in `excluded` are kept in the table but flagged so
    they are never geocoded.

    Args:
        path: Tab-separated file of `abbreviation<TAB>name` rows. A header row
            and `#` comment lines are tolerated.
        locality: Qualifier appended to every display name
        overrides: neighborhood_key -> substitute search string
        excluded: neighborhood_keys never geocoded
        verbose: Print record counts

    Returns:
        DataFrame with columns neighborhood_key, abbreviation, name,
        search_string, excluded

    Raises:
        ValueError: If two abbreviations collide case-insensitively
    """
    if overrides is None:
        overrides = config.ADDRESS_OVERRIDES
    if excluded is None:
        excluded = config.EXCLUDED_NEIGHBORHOODS

    lookup = pd.read_csv(
        path,
        sep='\t',
        header=None,
        names=['abbreviation', 'name'],
        comment='#',
        dtype=str,
        skipinitialspace=True,
    )
    lookup['abbreviation'] = lookup['abbreviation'].str.strip()
    lookup['name'] = lookup['name'].str.strip()
    lookup = lookup.dropna(subset=['abbreviation'])
    lookup = lookup[lookup['abbreviation'] != '']

    # Drop an optional header row
    is_header = (lookup['abbreviation'].str.lower() == 'abbreviation') & (lookup['name'].str.lower() == 'name')
    lookup = lookup[~is_header].reset_index(drop=True)

    lookup.insert(0, config.NEIGHBORHOOD_KEY_COLUMN, lookup['abbreviation'].map(normalize_neighborhood_key))

    duplicated = lookup[config.NEIGHBORHOOD_KEY_COLUMN].duplicated(keep=False)
    if duplicated.any():
        collisions = sorted(lookup.loc[duplicated, 'abbreviation'].tolist())
        raise ValueError(f"Neighborhood abbreviations collide case-insensitively: {collisions}")

    lookup['name'] = lookup['name'].fillna(lookup['abbreviation'])
    lookup['search_string'] = lookup['name'] + ", " + locality

    keys = lookup[config.NEIGHBORHOOD_KEY_COLUMN]
    override_addresses = {normalize_neighborhood_key(key): address for key, address in overrides.items()}
    has_override = keys.isin(list(override_addresses))
    lookup.loc[has_override, 'search_string'] = keys[has_override].map(override_addresses)

    excluded_keys = {normalize_neighborhood_key(key) for key in excluded}
    lookup['excluded'] = keys.isin(list(excluded_keys))

    if verbose:
        print(f"Loaded {len(lookup)} neighborhoods "
              f"({int(lookup['excluded'].sum())} excluded, "
              f"{int(has_override.sum())} with manual addresses)")

    return lookup
