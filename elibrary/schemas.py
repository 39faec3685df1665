from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Users
class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class TokenResponse(CamelModel):
    access_token: str


# Books
class AuthorOut(CamelModel):
    id: str
    name: str


class BookOut(CamelModel):
    id: str
    title: str
    description: str | None
    genre: str
    author: AuthorOut
    cover_image: str
    file: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BookCreated(BaseModel):
    id: str
