# wine_api/schemas/auth.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # The mobile client speaks camelCase JSON.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GoogleAuthIn(_CamelModel):
    google_id_token: str = Field(min_length=1)


class AuthOut(_CamelModel):
    token: str
    user_id: str
    email: str
    display_name: str
    avatar_url: str | None = None


class DevLoginIn(_CamelModel):
    email: EmailStr


class DevLoginOut(_CamelModel):
    token: str
    user_id: str
    email: str
    display_name: str
