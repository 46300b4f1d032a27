"""User entity for application profiles."""

from sqlmodel import Field, SQLModel

from pulsechat.domain.ids import new_id


class User(SQLModel, table=True):
    """Application profile of an authenticated user.

    Attributes:
        id: Internal user id referenced by every other entity.
        external_id: Subject id issued by the identity provider.
        name: Display name.
        email: Email address.
        avatar_url: Avatar image URL.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    external_id: str = Field(unique=True, index=True)
    name: str
    email: str = Field(default="")
    avatar_url: str = Field(default="")
