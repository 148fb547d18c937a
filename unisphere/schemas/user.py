from datetime import datetime

from pydantic import AliasChoices, Field

from unisphere.schemas.common import CamelModel


class UserBasic(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str


class UserRead(UserBasic):
    role_type: str = Field(validation_alias=AliasChoices("role", "roleType"), serialization_alias="roleType")
    is_active: bool
    is_verified: bool
    department_id: int | None = None
    profile_photo_file_id: int | None = None
    created_at: datetime
