"""Credit note PDF rendering."""

from creditnote.rendering.renderer import DocumentRenderer, terms_and_conditions
from creditnote.rendering.watermark import (
    FetchedResource,
    WatermarkCache,
    WatermarkState,
    apply_opacity,
    http_fetch,
)

__all__ = [
    "DocumentRenderer",
    "FetchedResource",
    "WatermarkCache",
    "WatermarkState",
    "apply_opacity",
    "http_fetch",
    "terms_and_conditions",
]
