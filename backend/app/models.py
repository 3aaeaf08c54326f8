# backend/app/models.py

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PRICE = "Market Price"
DEFAULT_SOURCE_TITLE = "Market Source"
PENDING_INSIGHT = "Analyzing..."


class Platform(str, Enum):
    EBAY = "eBay"
    POSHMARK = "Poshmark"
    ETSY = "Etsy"
    FACEBOOK = "Facebook Marketplace"
    AMAZON = "Amazon"
    DROPSHIPPING = "General Dropshipping"


class MediaPayload(BaseModel):
    """Base64 media as uploaded; a ``data:...;base64,`` prefix is allowed."""

    data: str
    mime_type: str

    @property
    def is_video(self) -> bool:
        return self.mime_type.lower().startswith("video")

    @property
    def raw_b64(self) -> str:
        if self.data.startswith("data:") and "," in self.data:
            return self.data.split(",", 1)[1]
        return self.data


class OptimizationRequest(BaseModel):
    platform: Platform
    rough_text: str = ""
    zip_code: Optional[str] = None
    media: Optional[MediaPayload] = None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [x if isinstance(x, str) else str(x) for x in value if x is not None]


class AgentInsights(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    research: str = PENDING_INSIGHT
    market_analysis: str = Field(default=PENDING_INSIGHT, alias="marketAnalysis")

    @field_validator("research", "market_analysis", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            return PENDING_INSIGHT
        return v if isinstance(v, str) else str(v)


class Source(BaseModel):
    title: str = DEFAULT_SOURCE_TITLE
    uri: str = ""


class OptimizedListing(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str
    hashtags: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    suggested_price: str = Field(default=DEFAULT_PRICE, alias="suggestedPrice")
    agent_insights: AgentInsights = Field(default_factory=AgentInsights, alias="agentInsights")
    sources: List[Source] = Field(default_factory=list)
    video_uri: Optional[str] = Field(default=None, alias="videoUri")

    @field_validator("hashtags", "keywords", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("suggested_price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> str:
        if v is None or isinstance(v, (dict, list)):
            return DEFAULT_PRICE
        text = v if isinstance(v, str) else str(v)
        return text if text.strip() else DEFAULT_PRICE

    @field_validator("agent_insights", mode="before")
    @classmethod
    def _insights(cls, v: Any) -> Any:
        if isinstance(v, (dict, AgentInsights)):
            return v
        return {}

    @field_validator("sources", mode="before")
    @classmethod
    def _sources(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []

    def with_video(self, uri: str) -> "OptimizedListing":
        return self.model_copy(update={"video_uri": uri})


class VideoRequest(BaseModel):
    title: str
    media: Optional[MediaPayload] = None
    listing: Optional[OptimizedListing] = None


class VideoResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_uri: str = Field(alias="videoUri")
    listing: Optional[OptimizedListing] = None


class JobStatus(BaseModel):
    job_id: Optional[str] = None
    kind: Optional[str] = None
    status: str
    result: Optional[Any] = None
    error: Optional[str] = None
    guidance: Optional[str] = None
    created_at: Optional[float] = None
    updated_at: Optional[float] = None
