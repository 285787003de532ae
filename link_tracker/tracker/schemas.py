from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime
import validators

from tracker.models import LinkMode, LinkStatus, VisitOutcome

class Token(BaseModel):
    access_token: str
    token_type: str

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=72)

class LinkCreate(BaseModel):
    target_url: str = Field(..., description="URL, на который ведет токен")
    mode: LinkMode = Field(LinkMode.REUSABLE, description="Многоразовая или одноразовая ссылка")

    @field_validator('target_url')
    def validate_url(cls, v):
        v = v.strip()
        if not validators.url(v):
            raise ValueError("Недействительный URL")
        return v

class VisitInfo(BaseModel):
    link_token: str
    timestamp: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    admitted: bool
    outcome: VisitOutcome

    model_config = ConfigDict(from_attributes=True)

class LinkResponse(BaseModel):
    token: str
    target_url: str
    mode: LinkMode
    status: LinkStatus
    redeem_url: str
    created_at: datetime
    consumed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class LinkDetailed(LinkResponse):
    visit_count: int = 0
    recent_visits: List[VisitInfo] = []

class LinkListResponse(BaseModel):
    links: List[LinkResponse]
    count: int

class VisitListResponse(BaseModel):
    visits: List[VisitInfo]
    count: int
