"""Recognition orchestrator: local segmentation or remote vision, then layout.

The orchestrator picks a processing path per call, falls back to local
segmentation when the remote service fails (if enabled), and optionally runs
the layout analyzer as a post-pass. It performs no retries and keeps no state
between calls besides its configuration.
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from pathlib import Path
from time import perf_counter
from typing import Any, Final, Literal, Protocol

import httpx
import yaml

from screen2design.detectors.region_segmenter import RegionSegmenter, SegmenterConfig
from screen2design.detectors.vision_service import (
    DEFAULT_MODEL,
    AIProvider,
    VisionServiceAdapter,
    VisionServiceConfig,
)
from screen2design.vision.errors import RecognitionError
from screen2design.vision.image import ImageInput, image_size
from screen2design.vision.layout import LayoutAnalyzer
from screen2design.vision.types import AnalysisResult

LOG = logging.getLogger(__name__)

DEFAULT_API_KEY_ENV: Final[str] = "SCREEN2DESIGN_API_KEY"

ServiceType = Literal["local", "remote"]


class SupportsAnalyze(Protocol):
    """Protocol for a recognition service (local segmenter or remote adapter)."""

    def analyze(self, image: ImageInput) -> AnalysisResult:
        """Analyze an image and return a tagged result."""
        ...

    def is_available(self) -> bool:
        """Report whether the service can run at all."""
        ...


@dataclass(frozen=True)
class ContainerHints:
    """Container size to compute constraints against, overriding the image size."""

    width: float
    height: float


@dataclass(frozen=True)
class RecognitionConfig:
    """Configuration for the recognition orchestrator.

    Remote fields (`provider`, `endpoint`, `api_key`, `model`) are all
    optional; setting any of them enables the remote path. When `api_key` is
    unset it is read from the `api_key_env` environment variable.
    """

    provider: AIProvider | None = None
    endpoint: str | None = None
    api_key: str | None = None
    api_key_env: str = DEFAULT_API_KEY_ENV
    model: str | None = None

    enable_local_fallback: bool = True
    color_threshold: float = 30
    min_region_size: int = 20
    max_regions: int = 50

    timeout_s: float = 60.0
    max_tokens: int = 4096

    @classmethod
    def from_yaml(cls, path: Path) -> "RecognitionConfig":
        """Load configuration from a YAML mapping of field names to values."""
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys in {path}: {unknown}")
        return cls(**data)

    def has_remote(self) -> bool:
        return any((self.provider, self.endpoint, self.api_key, self.model))

    def resolve_api_key(self) -> str:
        return self.api_key or os.getenv(self.api_key_env) or ""

    def segmenter_config(self) -> SegmenterConfig:
        return SegmenterConfig(
            color_threshold=self.color_threshold,
            min_region_size=self.min_region_size,
            max_regions=self.max_regions,
        )

    def vision_config(self) -> VisionServiceConfig:
        api_key = self.resolve_api_key()
        if self.provider is not None:
            return VisionServiceConfig.for_provider(
                self.provider,
                api_key,
                endpoint=self.endpoint,
                model=self.model,
                max_tokens=self.max_tokens,
                timeout_s=self.timeout_s,
            )
        return VisionServiceConfig(
            endpoint=self.endpoint or "",
            api_key=api_key,
            model=self.model or DEFAULT_MODEL,
            max_tokens=self.max_tokens,
            timeout_s=self.timeout_s,
        )


class RecognitionOrchestrator:
    """Chooses a recognition path and applies the fallback and layout policy."""

    def __init__(
        self,
        config: RecognitionConfig | None = None,
        *,
        segmenter: SupportsAnalyze | None = None,
        remote: SupportsAnalyze | None = None,
        layout_analyzer: LayoutAnalyzer | None = None,
        client_factory: Callable[..., httpx.Client] = httpx.Client,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Static configuration snapshot.
            segmenter: Local service; built from `config` when omitted.
            remote: Remote service; built from `config` when omitted and any
                remote field is configured.
            layout_analyzer: Layout post-pass implementation.
            client_factory: HTTP client factory handed to the remote adapter.
        """
        self.config = config or RecognitionConfig()
        self.segmenter: SupportsAnalyze = segmenter or RegionSegmenter(
            self.config.segmenter_config()
        )
        if remote is None and self.config.has_remote():
            remote = VisionServiceAdapter(
                self.config.vision_config(), client_factory=client_factory
            )
        self.remote: SupportsAnalyze | None = remote
        self.layout_analyzer = layout_analyzer or LayoutAnalyzer()

    def has_remote_service(self) -> bool:
        return self.remote is not None

    def available_services(self) -> list[ServiceType]:
        services: list[ServiceType] = []
        if self.segmenter.is_available():
            services.append("local")
        if self.remote is not None and self.remote.is_available():
            services.append("remote")
        return services

    def analyze(
        self,
        image: ImageInput,
        preferred: ServiceType = "local",
        *,
        analyze_layout: bool = True,
        container_hints: ContainerHints | None = None,
    ) -> AnalysisResult:
        """Analyze `image` and return a tagged result.

        Args:
            image: Encoded image bytes or a base64 data URL.
            preferred: ``"remote"`` tries the remote service first when one is
                configured; ``"local"`` goes straight to segmentation.
            analyze_layout: Run the layout post-pass on successful results.
            container_hints: Container size for constraints; defaults to the
                analyzed image size.
        """
        t0 = perf_counter()
        remote = self.remote
        if preferred == "remote" and remote is not None:
            result = remote.analyze(image)
            if not result.success and self.config.enable_local_fallback:
                LOG.warning(
                    "Remote analysis failed (%s), falling back to local segmentation",
                    result.error_kind,
                )
                result = self._try_local(image)
        else:
            result = self._try_local(image)

        if result.success and result.elements and analyze_layout:
            result = self._apply_layout(result, image, container_hints)

        LOG.info(
            "Recognition done: preferred=%s success=%s elements=%s took=%.2fs",
            preferred,
            result.success,
            len(result.elements),
            perf_counter() - t0,
        )
        return result

    def _try_local(self, image: ImageInput) -> AnalysisResult:
        if not self.segmenter.is_available():
            return AnalysisResult.failure(
                "decode_unavailable", "Local image processing is unavailable in this runtime"
            )
        return self.segmenter.analyze(image)

    def _container_size(
        self,
        result: AnalysisResult,
        image: ImageInput,
        hints: ContainerHints | None,
    ) -> tuple[float, float] | None:
        if hints is not None:
            return hints.width, hints.height
        if result.width > 0 and result.height > 0:
            return result.width, result.height
        try:
            return image_size(image)
        except RecognitionError as e:
            LOG.warning("Cannot determine container size for layout analysis: %s", e)
            return None

    def _apply_layout(
        self,
        result: AnalysisResult,
        image: ImageInput,
        hints: ContainerHints | None,
    ) -> AnalysisResult:
        size = self._container_size(result, image, hints)
        if size is None:
            return result
        w, h = size
        structure = self.layout_analyzer.analyze_structure(result.elements, w, h)
        elements = self.layout_analyzer.generate_all_constraints(result.elements, w, h)
        LOG.info(
            "Layout pass: container=%sx%s rows=%s columns=%s",
            w,
            h,
            len(structure.rows),
            len(structure.columns),
        )
        return replace(result, elements=elements, layout_structure=structure)


def analyze(
    image: ImageInput,
    config: RecognitionConfig | None = None,
    *,
    preferred: ServiceType = "local",
    analyze_layout: bool = True,
    container_hints: ContainerHints | None = None,
    **orchestrator_kwargs: Any,
) -> AnalysisResult:
    """Analyze one image with a fresh :class:`RecognitionOrchestrator`."""
    orchestrator = RecognitionOrchestrator(config, **orchestrator_kwargs)
    return orchestrator.analyze(
        image,
        preferred,
        analyze_layout=analyze_layout,
        container_hints=container_hints,
    )
