from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Accepts snake_case or camelCase on input and renders camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
