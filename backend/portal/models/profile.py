import enum
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Enum
from sqlalchemy.sql import func
from portal.db.base import Base

class ProfileRole(str, enum.Enum):
    CLIENT = "client"
    AGENT = "agent"
    ADMIN = "admin"
    SUPERADMINISTRATOR = "superadministrator"

class ProfileStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

STAFF_ROLES = (ProfileRole.ADMIN, ProfileRole.SUPERADMINISTRATOR)

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)

    first_name = Column(String, nullable=True)
    middle_name = Column(String, nullable=True)
    first_surname = Column(String, nullable=True)
    second_surname = Column(String, nullable=True)
    full_name = Column(String, nullable=True)

    identification_type = Column(String, nullable=True)
    identification_number = Column(String, unique=True, index=True, nullable=True)
    nationality = Column(String, nullable=True)
    birth_place = Column(String, nullable=True)
    birth_date = Column(Date, nullable=True)
    sex = Column(String, nullable=True)
    marital_status = Column(String, nullable=True)
    height = Column(Float, nullable=True)
    weight = Column(Float, nullable=True)
    phone_number = Column(String, nullable=True)

    role = Column(Enum(ProfileRole), default=ProfileRole.CLIENT, nullable=False)
    status = Column(Enum(ProfileStatus), default=ProfileStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
