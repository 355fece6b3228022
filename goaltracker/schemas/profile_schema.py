from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class Profile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: str = ""
    avatar_url: str = ""
    updated_at: datetime


class EmailAddress(BaseModel):
    email_address: str


class IdentityUserData(BaseModel):
    id: str
    email_addresses: Optional[List[EmailAddress]] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
