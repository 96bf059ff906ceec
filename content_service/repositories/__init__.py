"""
Repository layer - Data access abstractions.

One generic repository (``BaseBmc``) implements create/get/list/update/delete
for every entity; the per-entity modules only declare what differs.
"""

from .author_repository import AuthorBmc
from .base import BaseBmc, ModelManager
from .descriptor import EntityDescriptor, FieldSpec, OpKind, SortDirection
from .edit_repository import EditBmc
from .filters import ListOptions
from .post_repository import PostBmc

CACHED_ENTITIES = (AuthorBmc, PostBmc)

__all__ = [
    "AuthorBmc",
    "BaseBmc",
    "CACHED_ENTITIES",
    "EditBmc",
    "EntityDescriptor",
    "FieldSpec",
    "ListOptions",
    "ModelManager",
    "OpKind",
    "PostBmc",
    "SortDirection",
]
