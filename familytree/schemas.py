from pydantic import BaseModel, field_validator
from typing import Optional, Literal


class RegisterRequest(BaseModel):
    email: str
    name: str
    password: str
    setup_token: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("A valid email address is required")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    id: int
    email: str
    name: str
    role: str
    is_approved: bool


class InvitationCreate(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("A valid email address is required")
        return v


class IndividualIn(BaseModel):
    first_name: str
    last_name: str
    birth_date: Optional[str] = None
    birth_place: Optional[str] = None
    death_date: Optional[str] = None
    death_place: Optional[str] = None
    is_alive: bool = True
    bio: Optional[str] = None
    photo_url: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        return v


class IndividualOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    first_name: str
    last_name: str
    birth_date: Optional[str] = None
    birth_place: Optional[str] = None
    death_date: Optional[str] = None
    death_place: Optional[str] = None
    is_alive: bool
    bio: Optional[str] = None
    photo_url: Optional[str] = None


class RelCreate(BaseModel):
    individual_id: int
    related_individual_id: int
    relationship_type: Literal["parent", "child", "spouse", "sibling"]


class RelOut(BaseModel):
    id: int
    individual_id: int
    related_individual_id: int
    relationship_type: str
    created_at: Optional[str] = None


class TreeEdgeOut(BaseModel):
    id: int
    source: int
    target: int
    type: str
