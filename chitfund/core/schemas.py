from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Dict


class DocumentModel(BaseModel):
    """
    Base for document shapes.

    Attributes are snake_case in Python and camelCase in storage and JSON,
    so existing documents keep their field names.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self, exclude_unset: bool = False) -> Dict[str, Any]:
        """Dump to the stored (camelCase) form, dropping empty optionals"""
        return self.model_dump(by_alias=True, exclude_none=True, exclude_unset=exclude_unset, mode="json")
