from typing import Optional
from datetime import datetime
from pydantic import BaseModel

from aniverse.api.chat.schemas import CAMEL_CONFIG


class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = CAMEL_CONFIG
