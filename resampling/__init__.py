"""Distance and similarity based resampling of geolocated records."""

__all__: list[str] = []
