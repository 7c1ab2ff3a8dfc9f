"""
RestGate Backend — Resource Input Schemas
=========================================

What:  Pydantic models validating request bodies for each resource.
Why:   Create and update bodies are validated before the store is touched;
       a failing body never reaches the database.
How:   Every resource declares a create schema and a full-update schema.
       The partial-update schema used by PATCH is derived from the full-update
       schema by `partial_schema()`, so the two can never drift apart.

Operation kinds:
    create          → POST /api/v1/{route}          (all required fields)
    update-full     → PUT /api/v1/{route}/{id}      (total replacement)
    update-partial  → PATCH /api/v1/{route}/{id}    (every field optional)

Unknown keys in a body are ignored, matching the behavior of the schema
engine clients already target.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, Field, create_model

from restgate.services.route_registry import ResourceKey


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE_FULL = "update-full"
    UPDATE_PARTIAL = "update-partial"


# ══════════════════════════════════════════════════════════════════════════
# Post
# ══════════════════════════════════════════════════════════════════════════


class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str
    published: bool = False
    author_id: Optional[str] = Field(default=None, max_length=36)


class PostUpdate(BaseModel):
    """
    Full replacement of a post.

    Omitted optional fields are reset to their defaults, which is what
    distinguishes PUT from PATCH.
    """

    title: str = Field(min_length=1, max_length=255)
    content: str
    published: bool = False
    author_id: Optional[str] = Field(default=None, max_length=36)


# ══════════════════════════════════════════════════════════════════════════
# Comment
# ══════════════════════════════════════════════════════════════════════════


class CommentCreate(BaseModel):
    post_id: str = Field(min_length=1, max_length=36)
    body: str = Field(min_length=1)
    author_name: Optional[str] = Field(default=None, max_length=120)


class CommentUpdate(BaseModel):
    # post_id is fixed at creation; moving a comment is not an update
    body: str = Field(min_length=1)
    author_name: Optional[str] = Field(default=None, max_length=120)


# ══════════════════════════════════════════════════════════════════════════
# Schema Table
# ══════════════════════════════════════════════════════════════════════════


def partial_schema(schema: Type[BaseModel]) -> Type[BaseModel]:
    """
    Derive a PATCH schema where every field of `schema` is optional.

    Field constraints (min_length, max_length, ...) are kept, and the field
    type is NOT widened to Optional: `{"title": null}` still fails for a
    non-nullable column. Callers dump with `exclude_unset=True` so absent
    fields are left untouched.
    """
    fields: Dict[str, Any] = {}
    for name, info in schema.model_fields.items():
        annotation = info.annotation
        if info.metadata:
            annotation = Annotated[(annotation, *info.metadata)]
        fields[name] = (annotation, None)
    return create_model(f"{schema.__name__}Partial", **fields)


SchemaTable = Dict[Tuple[ResourceKey, OperationKind], Type[BaseModel]]

RESOURCE_SCHEMAS: Dict[ResourceKey, Tuple[Type[BaseModel], Type[BaseModel]]] = {
    ResourceKey.POST: (PostCreate, PostUpdate),
    ResourceKey.COMMENT: (CommentCreate, CommentUpdate),
}


def build_schema_table(
    resources: Dict[ResourceKey, Tuple[Type[BaseModel], Type[BaseModel]]] = RESOURCE_SCHEMAS,
) -> SchemaTable:
    """Expand (create, update) pairs into the three-operation lookup table."""
    table: SchemaTable = {}
    for key, (create_schema, update_schema) in resources.items():
        table[(key, OperationKind.CREATE)] = create_schema
        table[(key, OperationKind.UPDATE_FULL)] = update_schema
        table[(key, OperationKind.UPDATE_PARTIAL)] = partial_schema(update_schema)
    return table
