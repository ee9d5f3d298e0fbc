from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class BlogContent(_WireModel):
    title: str = ""
    content: str = ""
    is_html: bool = Field(False, alias="isHtml")


class CaptionsContent(_WireModel):
    """platform name -> caption text, platforms from KNOWN_PLATFORMS only."""

    captions: dict[str, str] = Field(default_factory=dict)


class RawContent(_WireModel):
    """Unstructured passthrough used when no extraction rule matched."""

    content: str = ""
    is_html: bool = Field(False, alias="isHtml")


class CampaignEmail(_WireModel):
    day: int = 1
    subject_line: str = Field("", alias="subjectLine")
    preheader: str = ""
    body: str = ""
    call_to_action: str = Field("", alias="callToAction")


class EmailCampaignContent(_WireModel):
    campaign: list[CampaignEmail] = Field(default_factory=list)
    strategy: str = ""


class KeyFeature(_WireModel):
    title: str = ""
    description: str = ""


class ProductDescriptionContent(_WireModel):
    headline: str = ""
    tagline: str = ""
    short_description: str = Field("", alias="shortDescription")
    full_description: str = Field("", alias="fullDescription")
    key_features: list[KeyFeature] = Field(default_factory=list, alias="keyFeatures")
    benefits: list[str] = Field(default_factory=list)
    target_audience: str = Field("", alias="targetAudience")
    call_to_action: str = Field("", alias="callToAction")
    seo_keywords: list[str] = Field(default_factory=list, alias="seoKeywords")


NormalizedContent = Union[
    BlogContent,
    CaptionsContent,
    RawContent,
    EmailCampaignContent,
    ProductDescriptionContent,
]
