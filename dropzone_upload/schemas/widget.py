import re
import secrets
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional

_WIDGET_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_CSS_VALUE = re.compile(r"^[#\w\s.,%()\-]*$")


def _hyphenate(name: str) -> str:
    return name.replace("_", "-")


class WidgetConfig(BaseModel):
    """Attributes of one drop-zone widget, as written in the shortcode."""

    model_config = ConfigDict(alias_generator=_hyphenate, populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=lambda: secrets.token_hex(2))
    callback: str = ""
    title: str = ""
    desc: str = ""

    border_width: str = ""
    border_style: str = ""
    border_color: str = ""
    background: str = ""
    margin_bottom: str = ""

    # MB; the service limit is used when unset
    max_file_size: Optional[float] = Field(default=None, gt=0)
    remove_links: bool = False
    clickable: bool = True
    accepted_files: Optional[str] = None
    max_files: Optional[int] = Field(default=None, ge=1)
    max_files_alert: str = "Max file limit exceeded."
    auto_process: bool = True
    upload_button_text: str = "Upload"
    dom_id: str = ""

    resize_width: Optional[int] = Field(default=None, ge=1)
    resize_height: Optional[int] = Field(default=None, ge=1)
    resize_quality: float = Field(default=0.8, gt=0, le=1)
    resize_method: Literal["contain", "crop"] = "contain"
    thumbnail_width: Optional[int] = Field(default=120, ge=1)
    thumbnail_height: Optional[int] = Field(default=120, ge=1)
    thumbnail_method: Literal["contain", "crop"] = "crop"

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        if not _WIDGET_ID.match(value):
            raise ValueError("id may only contain letters, digits, '-' and '_'")
        return value

    @field_validator("border_width", "border_style", "border_color", "background", "margin_bottom")
    @classmethod
    def check_css_value(cls, value: str) -> str:
        if not _CSS_VALUE.match(value):
            raise ValueError("unsupported characters in style value")
        return value.strip()
