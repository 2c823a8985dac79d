"""Helper for optional dependency imports.

Optional dependencies (shapely for polygon topology, scikit-learn for k-fold
cross-validation) are imported once at module load; callers check the
availability flag and raise a DependencyError when the feature is requested
without the library.
"""

from typing import Any

from spatialsmith.utils.errors import raise_dependency_error


def optional_import(
    module_path: str,
    names: list[str],
) -> tuple[bool, dict[str, Any]]:
    """Import optional dependencies.

    Args:
        module_path: Full import path (e.g., 'shapely.strtree').
        names: List of names to import from the module.

    Returns:
        Tuple of (available, imports) where imports maps each name to the
        imported object, or to None if the import failed.

    Example:
        >>> available, imports = optional_import("shapely", ["Polygon", "STRtree"])
        >>> SHAPELY_AVAILABLE = available
    """
    try:
        module = __import__(module_path, fromlist=names, level=0)
        result = {name: getattr(module, name) for name in names}
        return True, result
    except ImportError:
        result = {name: None for name in names}  # type: ignore
        return False, result


def optional_import_single(
    module_path: str,
    name: str,
) -> tuple[bool, Any]:
    """Import a single optional dependency.

    Convenience function for importing a single name.
    """
    available, imports = optional_import(module_path, [name])
    return available, imports[name]


def require(available: bool, dependency_name: str, optional_group: str) -> None:
    """Raise DependencyError unless an optional dependency was found.

    Args:
        available: Availability flag returned by optional_import.
        dependency_name: Distribution name of the dependency.
        optional_group: Extra that installs it.
    """
    if not available:
        raise_dependency_error(dependency_name, optional_group=optional_group)
