"""Bidirectional slug <-> table name registry."""

from typing import Dict, Iterator, Mapping, Tuple
from types import MappingProxyType

from dbconnectors.exceptions import ConfigurationError, TableLookupError


class TableRegistry:
    """Ordered one-to-one mapping between slugs and generated table names.

    Both directions are kept in sync so a table can be found by either
    identity without scanning.
    """

    def __init__(self) -> None:
        self._by_slug: Dict[str, str] = {}
        self._by_name: Dict[str, str] = {}

    def add(self, slug: str, name: str) -> None:
        """Register a table.

        Raises:
            ConfigurationError: If the slug or the name is already registered.
        """
        if slug in self._by_slug:
            raise ConfigurationError(f"The table {slug} is already created")
        if name in self._by_name:
            raise ConfigurationError(f"The table name {name} is already managed as '{self._by_name[name]}'")

        self._by_slug[slug] = name
        self._by_name[name] = slug

    def remove_slug(self, slug: str) -> str:
        """Deregister by slug and return the table name."""
        name = self.name_for(slug)
        del self._by_slug[slug]
        del self._by_name[name]
        return name

    def name_for(self, slug: str) -> str:
        try:
            return self._by_slug[slug]
        except KeyError:
            raise TableLookupError(f"No managed table for slug '{slug}'", key=slug) from None

    def slug_for(self, name: str) -> str:
        try:
            return self._by_name[name]
        except KeyError:
            raise TableLookupError(f"Table '{name}' is not managed", key=name) from None

    def resolve(self, name_or_slug: str) -> Tuple[str, str]:
        """Return (slug, name) for either identity.

        Raises:
            TableLookupError: If neither a slug nor a name matches.
        """
        if name_or_slug in self._by_slug:
            return name_or_slug, self._by_slug[name_or_slug]
        return self.slug_for(name_or_slug), name_or_slug

    def has_slug(self, slug: str) -> bool:
        return slug in self._by_slug

    def has_name(self, name: str) -> bool:
        return name in self._by_name

    def as_mapping(self) -> Mapping[str, str]:
        """Read-only slug -> name view."""
        return MappingProxyType(self._by_slug)

    def clear(self) -> None:
        self._by_slug.clear()
        self._by_name.clear()

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._by_slug.items()))

    def __len__(self) -> int:
        return len(self._by_slug)

    def __contains__(self, name_or_slug: object) -> bool:
        return name_or_slug in self._by_slug or name_or_slug in self._by_name
