"""Graph mutation ops.

Ops are the unit a writer backend encodes into an edit. This module only
describes them; how they are serialized on-chain is the writer's concern.
"""

import uuid
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, Discriminator, Field

from spacedrain.models.graph import ACCOUNT_TYPE_ID, TYPES_PROPERTY_ID, GraphId

if TYPE_CHECKING:
    from spacedrain.models.batch import Deletion


class CreateEntityOp(BaseModel):
    type: Literal["CREATE_ENTITY"] = "CREATE_ENTITY"
    id: GraphId
    name: str | None = None


class UpdateEntityOp(BaseModel):
    type: Literal["UPDATE_ENTITY"] = "UPDATE_ENTITY"
    id: GraphId
    name: str | None = None


class UnsetEntityValuesOp(BaseModel):
    """Clear property values on an entity before it is deleted."""

    type: Literal["UNSET_ENTITY_VALUES"] = "UNSET_ENTITY_VALUES"
    id: GraphId
    properties: list[GraphId] = Field(default_factory=list)
    language: Literal["all"] = "all"


class DeleteEntityOp(BaseModel):
    type: Literal["DELETE_ENTITY"] = "DELETE_ENTITY"
    id: GraphId


class CreateRelationOp(BaseModel):
    type: Literal["CREATE_RELATION"] = "CREATE_RELATION"
    id: GraphId
    type_id: GraphId = Field(alias="typeId")
    from_id: GraphId = Field(alias="fromId")
    to_id: GraphId = Field(alias="toId")

    model_config = {"populate_by_name": True}


class DeleteRelationOp(BaseModel):
    type: Literal["DELETE_RELATION"] = "DELETE_RELATION"
    id: GraphId


Op = Annotated[
    CreateEntityOp
    | UpdateEntityOp
    | UnsetEntityValuesOp
    | DeleteEntityOp
    | CreateRelationOp
    | DeleteRelationOp,
    Discriminator("type"),
]


def generate_id() -> str:
    """Generate a new dashless graph ID."""
    return uuid.uuid4().hex


class OpsBuilder:
    """Builds the op sequences the drain pipeline needs.

    Kept as a class so a writer backend with its own ID scheme can subclass
    it and override `new_id`.
    """

    def new_id(self) -> str:
        return generate_id()

    def delete_relation(self, relation_id: str) -> list[Op]:
        return [DeleteRelationOp(id=relation_id)]

    def delete_entity(self, entity_id: str, property_ids: list[str] | None = None) -> list[Op]:
        """Unset all property values (if any), then delete the entity."""
        ops: list[Op] = []
        if property_ids:
            ops.append(UnsetEntityValuesOp(id=entity_id, properties=property_ids))
        ops.append(DeleteEntityOp(id=entity_id))
        return ops

    def ops_for(self, deletion: "Deletion") -> list[Op]:
        if deletion.kind == "relation":
            return self.delete_relation(deletion.id)
        return self.delete_entity(deletion.id, deletion.property_ids)

    def create_author(self, wallet_address: str) -> tuple[str, list[Op]]:
        """Create an account entity named after the operator's wallet.

        Returns:
            Tuple of (author_id, ops)
        """
        author_id = self.new_id()
        ops: list[Op] = [
            CreateEntityOp(id=author_id, name=wallet_address),
            CreateRelationOp(
                id=self.new_id(),
                type_id=TYPES_PROPERTY_ID,
                from_id=author_id,
                to_id=ACCOUNT_TYPE_ID,
            ),
        ]
        return author_id, ops

    def rename_entity(self, entity_id: str, name: str) -> list[Op]:
        return [UpdateEntityOp(id=entity_id, name=name)]
