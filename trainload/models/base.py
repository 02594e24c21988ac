"""Shared pydantic base for persisted models."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model dumped with camelCase keys, populated by either name."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        """JSON-ready dict using the persisted key names."""
        return self.model_dump(mode="json", by_alias=True)
