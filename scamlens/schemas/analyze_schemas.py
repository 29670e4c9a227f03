import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


VERDICT_VALUES = ("SCAM", "NOT A SCAM", "UNCERTAIN")


class AnalysisRequest(BaseModel):
    """Body of POST /api/analyze."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: Optional[str] = None
    url: Optional[str] = None
    user_context: Optional[str] = Field(None, alias="userContext")
    images: List[str] = Field(default_factory=list, alias="imageBase64Array")

    @model_validator(mode="before")
    @classmethod
    def migrate_single_image(cls, data: Any) -> Any:
        # Older clients send one screenshot as "imageBase64"
        if isinstance(data, dict) and data.get("imageBase64"):
            data = dict(data)
            legacy = data.pop("imageBase64")
            images = data.get("imageBase64Array", data.get("images")) or []
            if not isinstance(images, list):
                return data
            logger.warning("Request uses deprecated 'imageBase64'; send 'imageBase64Array' instead")
            data.pop("images", None)
            data["imageBase64Array"] = [*images, legacy]
        elif isinstance(data, dict) and data.get("imageBase64Array", "") is None:
            data = dict(data)
            data["imageBase64Array"] = []
        return data

    def has_content(self) -> bool:
        fields = (self.text, self.url, self.user_context)
        if any(value and value.strip() for value in fields):
            return True
        return any(image and image.strip() for image in self.images)


class Verdict(BaseModel):
    """Shape the model reply must have before it is relayed."""

    model_config = ConfigDict(extra="allow")

    verdict: Literal["SCAM", "NOT A SCAM", "UNCERTAIN", "ERROR"]
    confidence: float = Field(ge=0, le=100)
    reason: str
    red_flags: List[str] = Field(default_factory=list)
    advice: str


FALLBACK_VERDICT: Dict[str, Any] = {
    "verdict": "ERROR",
    "confidence": 100,
    "reason": (
        "Đã xảy ra lỗi khi giao tiếp với AI. Điều này có thể do sự cố cấu hình "
        "hoặc dữ liệu đầu vào không hợp lệ."
    ),
    "red_flags": ["Lỗi API"],
    "advice": (
        "Vui lòng kiểm tra nhật ký máy chủ để biết thêm chi tiết. Đảm bảo khóa API "
        "của bạn được định cấu hình chính xác trong các biến môi trường."
    ),
}


def fallback_verdict() -> Dict[str, Any]:
    """Fresh copy of the error-shaped verdict returned on any pipeline failure."""
    return {**FALLBACK_VERDICT, "red_flags": list(FALLBACK_VERDICT["red_flags"])}


@dataclass(frozen=True)
class ImageAttachment:
    mime_type: str
    data: str  # base64 payload, no "data:...;base64," header

    def as_data_url(self, default_mime: str = "image/jpeg") -> str:
        return f"data:{self.mime_type or default_mime};base64,{self.data}"


@dataclass
class FetchedPageContent:
    url: str
    visible_text: str = ""
    form_markup: str = ""
    script_sources: List[str] = field(default_factory=list)


@dataclass
class FetchOutcome:
    """Result of trying to fetch a URL; exactly one of content/error is set."""

    content: Optional[FetchedPageContent] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.content is not None
