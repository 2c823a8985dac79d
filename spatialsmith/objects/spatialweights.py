"""Neighborhood weight matrices for areal data."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class SpatialWeights:
    """Spatial weights matrix describing areal neighborhood structure.

    Attributes:
        weights: Dense symmetric (n x n) matrix with zero diagonal; entry
            (i, j) is 1 when units i and j share a boundary.
        neighbors: Dictionary mapping index to list of neighbor indices.
        weights_type: How the matrix was built ('queen', 'rook',
            'adjacency', 'matrix').
        ids: Optional unit identifiers.
    """

    weights: np.ndarray
    neighbors: dict[int, list[int]]
    weights_type: str
    ids: Optional[list] = None

    def __post_init__(self) -> None:
        """Validate SpatialWeights."""
        weights = np.array(self.weights, dtype=float)
        if weights.ndim != 2 or weights.shape[0] != weights.shape[1]:
            raise ValueError(f"weights must be a square matrix, got {weights.shape}")
        if not np.all(np.isfinite(weights)) or np.any(weights < 0):
            raise ValueError("weights must be finite and non-negative")
        if np.any(np.diag(weights) != 0):
            raise ValueError("weights must have a zero diagonal")
        if not np.allclose(weights, weights.T):
            raise ValueError("weights must be symmetric")
        if self.ids is not None and len(self.ids) != weights.shape[0]:
            raise ValueError(
                f"ids ({len(self.ids)}) must match number of units ({weights.shape[0]})"
            )
        weights.setflags(write=False)
        object.__setattr__(self, "weights", weights)

    @property
    def n_observations(self) -> int:
        """Number of areal units."""
        return int(self.weights.shape[0])

    @property
    def neighbor_counts(self) -> np.ndarray:
        """Number of neighbors of each unit."""
        return (self.weights > 0).sum(axis=1)

    @property
    def isolated(self) -> np.ndarray:
        """Indices of units with no neighbors."""
        return np.flatnonzero(self.neighbor_counts == 0)

    @property
    def has_isolated(self) -> bool:
        return bool(self.isolated.size)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"SpatialWeights(type={self.weights_type}, "
            f"n={self.n_observations}, "
            f"avg_neighbors={self.neighbor_counts.mean():.1f}, "
            f"isolated={self.isolated.size})"
        )
