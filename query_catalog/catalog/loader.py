"""Read and write catalog definition files (YAML)."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from ..errors import CatalogLoadError
from .catalog import Catalog

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def builtin_catalog_path() -> Path:
    """Path of the bundled sales query catalog."""
    return Path(__file__).resolve().parent.parent / "definitions" / "sales_queries.yaml"


def read_records(path: PathLike) -> List[Dict[str, Any]]:
    """Read query records from one YAML file.

    Example YAML format:
        queries:
          - id: top-n-by-sales
            category: limit
            intent: Largest order lines for one country
            parameters:
              - {name: country, type: string, default: USA}
              - {name: limit, type: integer, default: 10}
            templates:
              postgres: SELECT ... WHERE COUNTRY = :country ORDER BY SALES DESC LIMIT :limit
            edge_cases:
              - Ties on SALES are broken arbitrarily by the engine.
            expectations:
              - {kind: ordered, column: SALES, direction: desc}

    Args:
        path: YAML file path

    Returns:
        Raw records in file order

    Raises:
        CatalogLoadError: If the file is missing, unparseable or has the wrong shape
    """
    path = Path(path)
    if not path.exists():
        raise CatalogLoadError(f"Catalog file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise CatalogLoadError(f"Catalog file {path} is not valid YAML: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("queries", []), list):
        raise CatalogLoadError(f"Catalog file {path} must contain a 'queries' list")
    return list(data.get("queries", []))


def load_catalog(
    paths: Optional[Iterable[PathLike]] = None, include_builtin: bool = True
) -> Catalog:
    """Load a catalog from YAML files.

    Args:
        paths: Additional catalog files, loaded after the bundled one
        include_builtin: Whether to include the bundled sales catalog

    Returns:
        The loaded catalog
    """
    files: List[Path] = []
    if include_builtin:
        files.append(builtin_catalog_path())
    for path in paths or []:
        files.append(Path(path))

    records: List[Dict[str, Any]] = []
    for path in files:
        file_records = read_records(path)
        logger.debug(f"Read {len(file_records)} query records from {path}")
        records.extend(file_records)

    catalog = Catalog.load(records)
    logger.info(f"Loaded catalog with {len(catalog)} queries from {len(files)} file(s)")
    return catalog


def dump_catalog(catalog: Catalog, path: PathLike) -> None:
    """Write ``catalog`` to a YAML file readable by :func:`load_catalog`."""
    document = {"queries": catalog.to_records()}
    with open(path, "w") as f:
        yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
