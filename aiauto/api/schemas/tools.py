from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ToolIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def params(self) -> dict[str, Any]:
        """Request body as sent upstream (camelCase keys, unset fields dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class BlogIn(_ToolIn):
    """
    Proxied as-is to the blog workflow webhook.
    - topic is required; other form fields pass through untouched
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    topic: str = Field("", description="Blog topic")
    length: Optional[str] = None
    tone: Optional[str] = None
    keywords: Optional[str] = None


class CaptionsIn(_ToolIn):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    topic: str = Field("", description="Post topic")
    platforms: Optional[list[str]] = Field(None, description="At least one platform")
    tone: Optional[str] = None
    hashtags: Optional[Any] = None
    length: Optional[str] = None
    image: Optional[Any] = None


class EmailIn(_ToolIn):
    subject: str = Field("", description="Campaign subject / topic")
    purpose: Optional[str] = None
    audience: Optional[str] = None
    tone: Optional[str] = None
    key_points: Optional[str] = Field(None, alias="keyPoints")
    cta: Optional[str] = None
    length: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")


class ProductIn(_ToolIn):
    product_name: str = Field("", alias="productName")
    category: Optional[str] = None
    features: Optional[str] = None
    target_audience: Optional[str] = Field(None, alias="targetAudience")
    tone: Optional[str] = None
    length: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")


class UseToolIn(BaseModel):
    tool_type: str = Field("", description="blog_generator | social_captions | email_campaigns | product_descriptions")
