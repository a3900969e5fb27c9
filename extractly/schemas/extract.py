from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _normalize_url(url: str) -> str:
    """Prepend https:// if no protocol is present."""
    url = url.strip()
    if url and not url.startswith(("http://", "https://", "//")):
        url = f"https://{url}"
    return url


class _UrlRequest(BaseModel):
    url: str = Field(min_length=1)

    @field_validator("url", mode="before")
    @classmethod
    def _add_protocol(cls, v: str) -> str:
        return _normalize_url(v) if isinstance(v, str) else v


class CssRequest(_UrlRequest):
    selector: str = Field(min_length=1)


class XPathRequest(_UrlRequest):
    xpath: str = Field(min_length=1)


class RenderRequest(_UrlRequest):
    selector: str = Field(min_length=1)


class BatchRequest(BaseModel):
    # Validated by the batch runner so a non-list gets its own message
    tasks: Any = None


# ---------------------------------------------------------------------------
# Batch tasks, immutable once parsed
# ---------------------------------------------------------------------------


class CssTask(CssRequest):
    model_config = ConfigDict(frozen=True)

    type: Literal["css"] = "css"


class XPathTask(XPathRequest):
    model_config = ConfigDict(frozen=True)

    type: Literal["xpath"] = "xpath"


class RenderTask(RenderRequest):
    model_config = ConfigDict(frozen=True)

    type: Literal["render"] = "render"


ExtractionTask = CssTask | XPathTask | RenderTask

TASK_MODELS: dict[str, type[BaseModel]] = {
    "css": CssTask,
    "xpath": XPathTask,
    "render": RenderTask,
}
