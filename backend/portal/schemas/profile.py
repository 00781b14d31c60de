from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import date, datetime
from portal.models.profile import ProfileRole, ProfileStatus

class ProfileBase(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    first_surname: Optional[str] = None
    second_surname: Optional[str] = None
    full_name: Optional[str] = None
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None
    nationality: Optional[str] = None
    birth_place: Optional[str] = None
    birth_date: Optional[date] = None
    sex: Optional[str] = None
    marital_status: Optional[str] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    phone_number: Optional[str] = None

class ProfileRegister(ProfileBase):
    password: str = Field(min_length=8)

class ClientCreate(ProfileRegister):
    """Client profile created by an agent on the client's behalf."""
    pass

class ProfileCreate(ProfileRegister):
    role: ProfileRole = ProfileRole.CLIENT

class ProfileUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    first_surname: Optional[str] = None
    second_surname: Optional[str] = None
    full_name: Optional[str] = None
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None
    nationality: Optional[str] = None
    birth_place: Optional[str] = None
    birth_date: Optional[date] = None
    sex: Optional[str] = None
    marital_status: Optional[str] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    phone_number: Optional[str] = None
    role: Optional[ProfileRole] = None
    status: Optional[ProfileStatus] = None

class ProfileSelfUpdate(BaseModel):
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    first_surname: Optional[str] = None
    second_surname: Optional[str] = None
    phone_number: Optional[str] = None

class ProfileResponse(ProfileBase):
    id: int
    role: ProfileRole
    status: ProfileStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UniquenessCheckRequest(BaseModel):
    email: Optional[str] = None
    identification_number: Optional[str] = None

class DuplicatedField(BaseModel):
    field: str
    value: str

class UniquenessCheckResponse(BaseModel):
    duplicated: List[DuplicatedField]
