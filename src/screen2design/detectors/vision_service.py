"""Remote UI-element recognition via an OpenAI-compatible chat-completions endpoint.

One request per analysis: the image travels as a data URL next to a fixed
instruction that spells out the JSON reply schema. The reply is free-form
model text, so it is recovered with an ordered chain of parsers.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Final, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from screen2design.vision.color import parse_color
from screen2design.vision.errors import (
    RecognitionError,
    RequestFailedError,
    ResponseParseError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    ServiceUnconfiguredError,
)
from screen2design.vision.image import ImageInput, to_data_url
from screen2design.vision.labels import normalize_element_type
from screen2design.vision.types import AnalysisResult, RecognizedElement

LOG = logging.getLogger(__name__)

AIProvider = Literal["openai", "alibaba", "gemini"]


@dataclass(frozen=True)
class ProviderPreset:
    default_endpoint: str
    default_model: str


PROVIDER_PRESETS: Final[dict[str, ProviderPreset]] = {
    "openai": ProviderPreset(
        default_endpoint="https://api.openai.com/v1/chat/completions",
        default_model="gpt-4-vision-preview",
    ),
    "alibaba": ProviderPreset(
        default_endpoint="https://dashscope.aliyuncs.com/compatible-mode/v1/chat/completions",
        default_model="qwen-vl-max",
    ),
    "gemini": ProviderPreset(
        default_endpoint="https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
        default_model="gemini-2.0-flash",
    ),
}

DEFAULT_MODEL: Final[str] = "gpt-4-vision-preview"

ANALYSIS_PROMPT: Final[str] = """
Analyze this image and identify its UI design elements. Reply with JSON in exactly this shape:
{
  "width": <image width in pixels>,
  "height": <image height in pixels>,
  "elements": [
    {
      "type": "rectangle|circle|text|image|frame|line",
      "x": <element x coordinate>,
      "y": <element y coordinate>,
      "width": <element width>,
      "height": <element height>,
      "color": "<hex color such as #FFFFFF>",
      "text": "<text content, for text elements>",
      "fontSize": <font size, for text elements>
    }
  ]
}

Locate buttons, text, images and containers as precisely as possible, including their
position, size and color. Return only the JSON, with no other commentary.
""".strip()


@dataclass(frozen=True, slots=True, kw_only=True)
class VisionServiceConfig:
    """Connection settings for one provider.

    Attributes:
        endpoint: Full chat-completions URL.
        api_key: Bearer token.
        model: Model id sent in the request body.
        provider: Preset name, informational once endpoint/model are resolved.
        max_tokens: Completion token cap.
        timeout_s: Total time allowed for one request, body included, in seconds.
    """

    endpoint: str = ""
    api_key: str = ""
    model: str = DEFAULT_MODEL
    provider: AIProvider | None = None
    max_tokens: int = 4096
    timeout_s: float = 60.0

    def __post_init__(self) -> None:
        if self.provider is not None and self.provider not in PROVIDER_PRESETS:
            raise ValueError(
                f"Unsupported provider: {self.provider!r}. Allowed: {sorted(PROVIDER_PRESETS)}"
            )

    @classmethod
    def for_provider(
        cls,
        provider: AIProvider,
        api_key: str,
        *,
        endpoint: str | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        timeout_s: float = 60.0,
    ) -> VisionServiceConfig:
        """Build a config from a provider preset, overriding endpoint/model if given."""
        if provider not in PROVIDER_PRESETS:
            raise ValueError(
                f"Unsupported provider: {provider!r}. Allowed: {sorted(PROVIDER_PRESETS)}"
            )
        preset = PROVIDER_PRESETS[provider]
        return cls(
            endpoint=endpoint or preset.default_endpoint,
            api_key=api_key,
            model=model or preset.default_model,
            provider=provider,
            max_tokens=max_tokens,
            timeout_s=timeout_s,
        )


def _finite(v: Any) -> float | None:
    """Return `v` as a finite float, or None if it is missing or not a number."""
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


class _ApiElement(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = None
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    color: str | None = None
    text: str | None = None
    font_size: float | None = Field(default=None, alias="fontSize")

    @field_validator("x", "y", "width", "height", mode="before")
    @classmethod
    def _coerce_number(cls, v: Any) -> float:
        f = _finite(v)
        return 0.0 if f is None else f

    @field_validator("font_size", mode="before")
    @classmethod
    def _coerce_font_size(cls, v: Any) -> float | None:
        return _finite(v)

    @field_validator("type", "color", "text", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)


class _ApiReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    width: float = 0.0
    height: float = 0.0
    elements: list[_ApiElement] = Field(default_factory=list)

    @field_validator("width", "height", mode="before")
    @classmethod
    def _coerce_size(cls, v: Any) -> float:
        f = _finite(v)
        return 0.0 if f is None else f

    @field_validator("elements", mode="before")
    @classmethod
    def _coerce_elements(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        # Some models return a single object instead of a list.
        if isinstance(v, dict):
            return [v]
        if isinstance(v, list):
            return [e for e in v if isinstance(e, dict)]
        return []


def _as_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_whole(text: str) -> dict[str, Any] | None:
    """Parse the reply when it is a bare JSON object."""
    return _as_object(text.strip())


_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def parse_fenced(text: str) -> dict[str, Any] | None:
    """Parse the first fenced code block holding a JSON object."""
    for m in _FENCE_RE.finditer(text):
        data = _as_object(m.group(1))
        if data is not None:
            return data
    return None


# An object must open with a key or close immediately.
_OBJECT_START_RE = re.compile(r'\{\s*["}]')
# Decode attempts per reply; each attempt may scan to the end of the text.
_MAX_EMBEDDED_ATTEMPTS = 64


def parse_embedded(text: str) -> dict[str, Any] | None:
    """Find the first balanced JSON object with an ``elements`` array inside prose.

    At most ``_MAX_EMBEDDED_ATTEMPTS`` candidate openings are decoded.
    """
    decoder = json.JSONDecoder()
    for attempt, m in enumerate(_OBJECT_START_RE.finditer(text)):
        if attempt >= _MAX_EMBEDDED_ATTEMPTS:
            LOG.warning("Gave up looking for embedded JSON after %s attempts", attempt)
            break
        try:
            data, _ = decoder.raw_decode(text, m.start())
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and isinstance(data.get("elements"), list):
            return data
    return None


REPLY_PARSERS: Final[tuple[Callable[[str], dict[str, Any] | None], ...]] = (
    parse_whole,
    parse_fenced,
    parse_embedded,
)


def extract_payload(text: str) -> dict[str, Any]:
    """Run :data:`REPLY_PARSERS` in order and return the first successful result.

    Raises:
        ResponseParseError: If no strategy yields a JSON object.
    """
    for parser in REPLY_PARSERS:
        data = parser(text)
        if data is not None:
            LOG.debug("Vision reply parsed by %s", parser.__name__)
            return data
    raise ResponseParseError("Could not extract JSON from the model reply")


def _convert_element(elem: _ApiElement) -> RecognizedElement:
    return RecognizedElement(
        type=normalize_element_type(elem.type),
        x=elem.x,
        y=elem.y,
        width=elem.width,
        height=elem.height,
        color=parse_color(elem.color) if elem.color else None,
        text=elem.text,
        font_size=elem.font_size,
    )


def parse_reply(text: str) -> AnalysisResult:
    """Turn the model's reply text into a successful :class:`AnalysisResult`.

    Raises:
        ResponseParseError: If no JSON payload can be recovered or validated.
    """
    payload = extract_payload(text)
    try:
        reply = _ApiReply.model_validate(payload)
    except ValidationError as e:  # pragma: no cover
        raise ResponseParseError("Model reply does not match the expected schema") from e
    return AnalysisResult(
        width=round(reply.width),
        height=round(reply.height),
        elements=[_convert_element(e) for e in reply.elements],
    )


def _message_text(data: dict[str, Any]) -> str:
    """Return the first choice's message content; text parts are joined by newlines."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    if isinstance(content, list):
        return "\n".join(
            p["text"] for p in content if isinstance(p, dict) and isinstance(p.get("text"), str)
        )
    return content if isinstance(content, str) else ""


def _finish_reason(data: dict[str, Any]) -> str | None:
    try:
        return data["choices"][0].get("finish_reason")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


def build_request_body(image_url: str, *, model: str, max_tokens: int) -> dict[str, Any]:
    """Build the chat-completions request shared by every provider."""
    return {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": ANALYSIS_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                ],
            }
        ],
        "max_tokens": max_tokens,
    }


class VisionServiceAdapter:
    """Client for a remote vision-capable chat-completions service."""

    def __init__(
        self,
        config: VisionServiceConfig,
        *,
        client_factory: Callable[..., httpx.Client] = httpx.Client,
    ) -> None:
        self.config = config
        self.client_factory = client_factory

    def is_available(self) -> bool:
        """Configuration check only; no request is made."""
        return bool(self.config.endpoint and self.config.api_key)

    def request_completion(self, body: dict[str, Any]) -> str:
        """POST `body` and return the assistant message text.

        ``timeout_s`` bounds the whole exchange: the response body is streamed
        and reading stops once the deadline passes.

        Raises:
            ServiceTimeoutError: If the request exceeds ``timeout_s``.
            ServiceUnavailableError: If the endpoint cannot be reached.
            RequestFailedError: On non-2xx status or a malformed response body.
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        deadline = perf_counter() + self.config.timeout_s
        try:
            with (
                self.client_factory(timeout=self.config.timeout_s) as client,
                client.stream("POST", self.config.endpoint, json=body, headers=headers) as resp,
            ):
                status = resp.status_code
                raw = self._read_until(resp, deadline)
        except httpx.TimeoutException as e:
            raise self._timeout_error() from e
        except httpx.TransportError as e:
            raise ServiceUnavailableError(f"Vision service unreachable: {e}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RequestFailedError(f"Vision request failed: {e}") from e

        if not 200 <= status < 300:
            snippet = raw.decode("utf-8", errors="replace")[:500]
            raise RequestFailedError(f"API request failed ({status}): {snippet}")
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise RequestFailedError("API response is not valid JSON") from e
        if not isinstance(data, dict):
            raise RequestFailedError("API response has an invalid format")

        text = _message_text(data)
        LOG.info(
            "Vision response received: finish_reason=%s usage=%s",
            _finish_reason(data),
            data.get("usage"),
        )
        if not text:
            raise RequestFailedError("API response has an invalid format")
        return text

    def _timeout_error(self) -> ServiceTimeoutError:
        return ServiceTimeoutError(f"Vision request timed out after {self.config.timeout_s:g}s")

    def _read_until(self, resp: httpx.Response, deadline: float) -> bytes:
        """Read the whole body, raising once `deadline` (a perf_counter value) passes."""
        chunks: list[bytes] = []
        for chunk in resp.iter_bytes():
            if perf_counter() > deadline:
                raise self._timeout_error()
            chunks.append(chunk)
        if perf_counter() > deadline:
            raise self._timeout_error()
        return b"".join(chunks)

    def analyze(self, image: ImageInput) -> AnalysisResult:
        """Analyze `image` remotely; every failure becomes a failed result."""
        try:
            return self._analyze(image)
        except RecognitionError as e:
            LOG.warning("Vision service analysis failed (%s): %s", e.kind, e)
            return AnalysisResult.failure(e.kind, f"Vision service call failed: {e}")

    def _analyze(self, image: ImageInput) -> AnalysisResult:
        if not self.is_available():
            raise ServiceUnconfiguredError("Vision service is missing its endpoint or API key")
        t0 = perf_counter()
        body = build_request_body(
            to_data_url(image),
            model=self.config.model,
            max_tokens=self.config.max_tokens,
        )
        LOG.info(
            "Requesting vision analysis: provider=%s model=%s endpoint=%s",
            self.config.provider,
            self.config.model,
            self.config.endpoint,
        )
        text = self.request_completion(body)
        result = parse_reply(text)
        LOG.info(
            "Vision analysis parsed: elements=%s took=%.2fs",
            len(result.elements),
            perf_counter() - t0,
        )
        return result
