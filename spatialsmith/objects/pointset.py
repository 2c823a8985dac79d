"""Point-referenced locations."""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class PointSet:
    """Ordered collection of 2D point coordinates.

    Duplicate coordinates are allowed (repeated sampling at one location).

    Attributes:
        coordinates: Array of shape (n_points, 2).
    """

    coordinates: np.ndarray

    def __post_init__(self) -> None:
        """Validate and normalize coordinates."""
        coordinates = np.array(self.coordinates, dtype=float)
        if coordinates.ndim == 1 and coordinates.size == 2:
            coordinates = coordinates.reshape(1, 2)
        if coordinates.ndim != 2 or coordinates.shape[1] != 2:
            raise ValueError(
                f"coordinates must have shape (n_points, 2), got {coordinates.shape}"
            )
        if not np.all(np.isfinite(coordinates)):
            raise ValueError("coordinates must be finite")
        coordinates.setflags(write=False)
        object.__setattr__(self, "coordinates", coordinates)

    @classmethod
    def from_frame(
        cls, data: pd.DataFrame, columns: tuple[str, str] = ("x", "y")
    ) -> "PointSet":
        """Build a PointSet from two DataFrame columns."""
        missing = [c for c in columns if c not in data.columns]
        if missing:
            raise ValueError(f"Coordinate columns not found in data: {missing}")
        return cls(coordinates=data.loc[:, list(columns)].to_numpy(dtype=float))

    @property
    def n_points(self) -> int:
        """Number of points."""
        return int(self.coordinates.shape[0])

    def subset(self, mask: np.ndarray) -> "PointSet":
        """Return the points selected by a boolean mask or index array."""
        return PointSet(coordinates=self.coordinates[mask])

    def __len__(self) -> int:
        return self.n_points

    def __repr__(self) -> str:
        """String representation."""
        return f"PointSet(n_points={self.n_points})"


def as_pointset(
    locations: Union["PointSet", np.ndarray, list], n_expected: Optional[int] = None
) -> PointSet:
    """Coerce an array-like of coordinates to a PointSet.

    Args:
        locations: PointSet or array-like of shape (n, 2).
        n_expected: If given, the required number of points.

    Raises:
        ValueError: If the number of points does not match.
    """
    points = locations if isinstance(locations, PointSet) else PointSet(np.asarray(locations))
    if n_expected is not None and points.n_points != n_expected:
        raise ValueError(
            f"Expected {n_expected} locations, got {points.n_points}"
        )
    return points
