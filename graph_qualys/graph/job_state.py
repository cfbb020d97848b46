"""In-memory job state: the sink that collected entities and relationships land in."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Iterator

from graph_qualys.graph.entities import Entity, Relationship

logger = logging.getLogger(__name__)


class DuplicateKeyError(Exception):
    """Raised when an entity or relationship key has already been added."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Duplicate _key detected: {key}")


class JobState:
    """Thread-safe store of graph objects plus data handed between steps."""

    def __init__(self) -> None:
        self._entities: dict[str, Entity] = {}
        self._relationships: dict[str, Relationship] = {}
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def add_entities(self, entities: Iterable[Entity]) -> list[Entity]:
        entities = list(entities)
        with self._lock:
            for entity in entities:
                if entity.key in self._entities or entity.key in self._relationships:
                    raise DuplicateKeyError(entity.key)
                self._entities[entity.key] = entity
        return entities

    def add_entity(self, entity: Entity) -> Entity:
        self.add_entities([entity])
        return entity

    def add_relationships(self, relationships: Iterable[Relationship]) -> list[Relationship]:
        relationships = list(relationships)
        with self._lock:
            for relationship in relationships:
                key = relationship.key
                if key in self._relationships or key in self._entities:
                    raise DuplicateKeyError(key)
                self._relationships[key] = relationship
        return relationships

    def has_key(self, key: str) -> bool:
        with self._lock:
            return key in self._entities or key in self._relationships

    def find_entity(self, key: str) -> Entity | None:
        with self._lock:
            return self._entities.get(key)

    def iterate_entities(self, entity_type: str | None = None) -> Iterator[Entity]:
        with self._lock:
            entities = list(self._entities.values())
        for entity in entities:
            if entity_type is None or entity.type == entity_type:
                yield entity

    def iterate_relationships(
        self, relationship_type: str | None = None,
    ) -> Iterator[Relationship]:
        with self._lock:
            relationships = list(self._relationships.values())
        for relationship in relationships:
            if relationship_type is None or relationship.type == relationship_type:
                yield relationship

    # -- step data ---------------------------------------------------------

    def set_data(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def get_data(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    # -- output ------------------------------------------------------------

    def summary(self) -> dict[str, dict[str, int]]:
        """Counts of collected objects keyed by ``_type``."""
        counts: dict[str, dict[str, int]] = {"entities": {}, "relationships": {}}
        for entity in self.iterate_entities():
            counts["entities"][entity.type] = counts["entities"].get(entity.type, 0) + 1
        for rel in self.iterate_relationships():
            counts["relationships"][rel.type] = counts["relationships"].get(rel.type, 0) + 1
        return counts

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "entities": [e.to_graph_object() for e in self.iterate_entities()],
            "relationships": [r.to_graph_object() for r in self.iterate_relationships()],
        }

    def write_json(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        document = self.to_dict()
        path.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
        logger.info(
            "Wrote %d entities and %d relationships to %s",
            len(document["entities"]), len(document["relationships"]), path,
        )
        return path
