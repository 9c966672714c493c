"""Pydantic schemas used by the VidHub API.

Field names on the wire are camelCase, matching the browser client.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResourceSite(CamelModel):
    """One searchable video source."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    url: str
    search_result_class: Optional[str] = None
    class_name: Optional[str] = None
    remark: str = ""
    active: bool = True
    is_post: Optional[bool] = None
    post_data: Optional[Union[str, Dict[str, Any]]] = None


class SiteConfig(CamelModel):
    """Full configuration record as written by the admin panel."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    resource_sites: List[ResourceSite] = Field(default_factory=list)
    parse_api: str = ""
    background_image: str = ""
    enable_login: bool = False
    login_password: str = ""
    announcement: str = ""
    # Older clients send ``false`` to mean "no custom title"
    custom_title: Union[str, bool] = ""

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class LoginRequest(CamelModel):
    password: str = ""
    is_admin: bool = False


class LoginResponse(BaseModel):
    success: bool = True
    token: str


class MessageResponse(BaseModel):
    message: str


class SearchRequest(CamelModel):
    """Upstream page to fetch on behalf of the browser."""

    url: str = ""
    is_post: bool = False
    post_data: Optional[Union[str, Dict[str, Any]]] = None
    class_name: Optional[str] = None


__all__ = [
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "ResourceSite",
    "SearchRequest",
    "SiteConfig",
]
