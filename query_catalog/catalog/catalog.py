"""Catalog of query definitions."""

from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from ..errors import CatalogLoadError, NotFoundError
from .definition import Category, QueryDefinition

Source = Union[QueryDefinition, Mapping[str, Any]]


class Catalog:
    """Immutable, ordered collection of query definitions.

    A catalog is built once by :meth:`load` and never mutated afterwards, so
    it may be shared freely between threads. Reloading means building a new
    catalog and swapping the reference.
    """

    def __init__(self, definitions: Iterable[QueryDefinition] = ()):
        """Initialize catalog.

        Args:
            definitions: Validated definitions in declaration order

        Raises:
            CatalogLoadError: If two definitions share an id
        """
        by_id: Dict[str, QueryDefinition] = {}
        by_category: Dict[Category, List[str]] = {}
        for definition in definitions:
            if definition.id in by_id:
                raise CatalogLoadError(f"Duplicate query id: {definition.id}")
            by_id[definition.id] = definition
            by_category.setdefault(definition.category, []).append(definition.id)

        self._definitions: Mapping[str, QueryDefinition] = MappingProxyType(by_id)
        self._by_category: Mapping[Category, Tuple[str, ...]] = MappingProxyType(
            {category: tuple(ids) for category, ids in by_category.items()}
        )

    @classmethod
    def load(cls, sources: Iterable[Source]) -> "Catalog":
        """Build a catalog from records or definitions.

        Args:
            sources: Mappings in the catalog record format, or definitions

        Returns:
            A new catalog

        Raises:
            CatalogLoadError: On duplicate ids, undeclared placeholders,
                unused parameters or malformed records
        """
        definitions = []
        for source in sources:
            if isinstance(source, QueryDefinition):
                definitions.append(source)
            else:
                definitions.append(QueryDefinition.from_record(source))
        return cls(definitions)

    def get(self, query_id: str) -> QueryDefinition:
        """Return the definition for ``query_id``.

        Raises:
            NotFoundError: If the id is not in the catalog
        """
        definition = self._definitions.get(query_id)
        if definition is None:
            raise NotFoundError(query_id)
        return definition

    def list(self, category: Optional[Union[Category, str]] = None) -> List[QueryDefinition]:
        """List definitions in declaration order.

        Args:
            category: Restrict to one category. When omitted, all definitions
                are returned grouped by category, categories ordered by first
                declaration.

        Returns:
            Definitions in deterministic order
        """
        if category is not None:
            ids = self._by_category.get(Category(category), ())
            return [self._definitions[query_id] for query_id in ids]

        definitions = []
        for ids in self._by_category.values():
            for query_id in ids:
                definitions.append(self._definitions[query_id])
        return definitions

    def ids(self) -> List[str]:
        return list(self._definitions)

    def categories(self) -> List[Category]:
        return list(self._by_category)

    def to_records(self) -> List[Dict[str, Any]]:
        """Records in declaration order that :meth:`load` restores losslessly."""
        return [definition.to_record() for definition in self._definitions.values()]

    def __contains__(self, query_id: object) -> bool:
        return query_id in self._definitions

    def __iter__(self) -> Iterator[QueryDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f"Catalog(queries={len(self._definitions)}, categories={len(self._by_category)})"
