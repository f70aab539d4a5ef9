"""
Pydantic models for pets.

Field names follow the Swagger Petstore (``photoUrls`` keeps its
camelCase spelling).  ``id`` and ``status`` are required by the store,
which reports their absence as a 400; they are optional here so that
the store's validation is the single place where the rule lives.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Category(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    name: Optional[str] = None


class Tag(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    name: Optional[str] = Field(None, examples=["dog"])


class Pet(BaseModel):
    """A pet record.  Unknown fields are kept and stored as sent."""

    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = Field(None, examples=[1])
    name: Optional[str] = Field(None, examples=["doggie"])
    category: Optional[Category] = None
    photoUrls: Optional[List[str]] = None
    tags: Optional[List[Tag]] = None
    status: Optional[str] = Field(
        None,
        description="Pet status in the store, e.g. available, pending or sold",
        examples=["available"],
    )

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
