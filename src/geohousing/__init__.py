"""
Geohousing - Neighborhood Geocoding for Sale Price Models

Exploratory analysis comparing two CatBoost sale-price models:
- Neighborhood identity as one-hot encoded categories
- Geocoded neighborhood centroids as planar UTM coordinates
- Memoized geocoding with per-address failure handling
- Cross-validated and held-out RMSE with residual plots
"""

__version__ = "1.0.0"
