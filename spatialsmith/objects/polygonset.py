"""Polygon geometries used to derive areal neighborhood structure."""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class PolygonSet:
    """Ordered collection of simple polygons.

    Each polygon is given by its exterior ring as an array of (x, y)
    vertices; the ring may or may not repeat its first vertex.

    Attributes:
        rings: List of exterior rings, one (n_vertices, 2) array per polygon.
        ids: Optional identifiers, one per polygon.
    """

    rings: list[np.ndarray]
    ids: Optional[list] = field(default=None)

    def __post_init__(self) -> None:
        """Validate polygon rings."""
        rings = []
        for i, ring in enumerate(self.rings):
            ring = np.asarray(ring, dtype=float)
            if ring.ndim != 2 or ring.shape[1] != 2:
                raise ValueError(
                    f"ring {i} must have shape (n_vertices, 2), got {ring.shape}"
                )
            if ring.shape[0] < 3:
                raise ValueError(f"ring {i} needs at least 3 vertices, got {ring.shape[0]}")
            rings.append(ring)
        object.__setattr__(self, "rings", rings)

        if self.ids is not None and len(self.ids) != len(rings):
            raise ValueError(
                f"ids ({len(self.ids)}) and rings ({len(rings)}) must have same length"
            )

    @classmethod
    def from_grid(cls, n_rows: int, n_cols: int, cell_size: float = 1.0) -> "PolygonSet":
        """Build a regular lattice of square cells, row-major order."""
        rings = []
        for r in range(n_rows):
            for c in range(n_cols):
                x0, y0 = c * cell_size, r * cell_size
                rings.append(
                    np.array(
                        [
                            [x0, y0],
                            [x0 + cell_size, y0],
                            [x0 + cell_size, y0 + cell_size],
                            [x0, y0 + cell_size],
                        ]
                    )
                )
        return cls(rings=rings)

    @property
    def n_polygons(self) -> int:
        """Number of polygons."""
        return len(self.rings)

    def __len__(self) -> int:
        return self.n_polygons

    def __repr__(self) -> str:
        """String representation."""
        return f"PolygonSet(n_polygons={self.n_polygons})"
