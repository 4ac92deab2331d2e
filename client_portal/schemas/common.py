"""
Shared schema base.

WHAT: Base model mapping snake_case Python fields to camelCase JSON.

WHY: Storage and Python use snake_case, the portal frontend speaks
camelCase. Generating every alias from the field name means a field
added to a schema is mapped in both directions without a second list
to keep in sync.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for all request and response schemas."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str
