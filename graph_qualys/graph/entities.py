"""Graph entity and relationship models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A typed graph node; serialized with the ``_key``/``_type``/``_class`` aliases."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(alias="_key")
    type: str = Field(alias="_type")
    class_: str = Field(alias="_class")
    display_name: str = Field(alias="displayName")
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_graph_object(self) -> dict[str, Any]:
        """Flatten into the document shape the graph platform ingests."""
        return {
            **self.properties,
            **self.model_dump(by_alias=True, exclude={"properties"}),
        }


class Relationship(BaseModel):
    """A directed, classed edge between two entity keys."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(alias="_key")
    type: str = Field(alias="_type")
    class_: str = Field(alias="_class")
    from_key: str = Field(alias="_fromEntityKey")
    to_key: str = Field(alias="_toEntityKey")
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_graph_object(self) -> dict[str, Any]:
        return {
            **self.properties,
            **self.model_dump(by_alias=True, exclude={"properties"}),
        }


def _relationship_type(from_type: str, verb: str, to_type: str) -> str:
    # qualys_host + HAS + qualys_host_finding -> qualys_host_has_host_finding
    prefix = from_type.split("_", 1)[0] + "_"
    if to_type.startswith(prefix):
        to_type = to_type[len(prefix):]
    return f"{from_type}_{verb.lower()}_{to_type}"


def create_direct_relationship(
    from_entity: Entity,
    class_: str,
    to_entity: Entity,
    properties: dict[str, Any] | None = None,
) -> Relationship:
    """Relate two entities, deriving the key and type from both ends."""
    return Relationship(
        key=f"{from_entity.key}|{class_.lower()}|{to_entity.key}",
        type=_relationship_type(from_entity.type, class_, to_entity.type),
        class_=class_,
        from_key=from_entity.key,
        to_key=to_entity.key,
        properties=properties or {},
    )
