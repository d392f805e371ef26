"""
Watermark Cache

The company logo is drawn faintly behind every credit note. It is
fetched ONCE per process and reused for every render.

States:
    UNFETCHED → READY (image decoded)
    UNFETCHED → ABSENT (no URL, HTTP error, not an image, undecodable)

A missing watermark never fails a render; it is logged and the page
is drawn without it.

DESIGN DECISION: The fetch happens outside the lock and only the
publication of the result is locked. Two threads may both fetch on a
cold cache; the first to publish wins and both see a complete state.
"""

import io
import threading
import time
from enum import Enum
from typing import Callable, NamedTuple, Optional

import requests
import structlog
from PIL import Image


logger = structlog.get_logger(__name__)

WATERMARK_OPACITY = 0.08
MAX_WATERMARK_BYTES = 5 * 1024 * 1024
FETCH_CHUNK_BYTES = 64 * 1024


class WatermarkState(str, Enum):
    UNFETCHED = "unfetched"
    READY = "ready"
    ABSENT = "absent"


class FetchedResource(NamedTuple):
    status_code: int
    content_type: str
    body: bytes


Fetcher = Callable[[str, float], FetchedResource]


def http_fetch(url: str, timeout_seconds: float) -> FetchedResource:
    """
    GET the resource within `timeout_seconds` overall.

    requests' timeout bounds each socket read, not the download, so the
    body is streamed against a deadline and a size cap.

    Raises:
        requests.Timeout: The deadline passed before the body was complete
        requests.RequestException: Connection failure or body too large
    """
    deadline = time.monotonic() + timeout_seconds
    with requests.get(url, timeout=timeout_seconds, stream=True) as response:
        body = bytearray()
        for chunk in response.iter_content(chunk_size=FETCH_CHUNK_BYTES):
            body.extend(chunk)
            if len(body) > MAX_WATERMARK_BYTES:
                raise requests.RequestException(
                    f"Watermark larger than {MAX_WATERMARK_BYTES} bytes"
                )
            if time.monotonic() > deadline:
                raise requests.Timeout(f"Watermark download exceeded {timeout_seconds}s")
        return FetchedResource(
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            body=bytes(body),
        )


def apply_opacity(image: Image.Image, opacity: float) -> Image.Image:
    """RGBA copy with every pixel's alpha scaled by `opacity`."""
    rgba = image.convert("RGBA")
    alpha = rgba.getchannel("A").point(lambda a: int(round(a * opacity)))
    rgba.putalpha(alpha)
    return rgba


class WatermarkCache:
    """
    Process-wide, fetch-once holder for the watermark image.

    Usage:
        cache = WatermarkCache(url, timeout_seconds=5.0)
        image = cache.get()    # PIL image with opacity applied, or None
    """

    def __init__(
        self,
        url: Optional[str],
        timeout_seconds: float = 5.0,
        fetcher: Optional[Fetcher] = None,
        opacity: float = WATERMARK_OPACITY,
    ):
        self._url = url
        self._timeout = timeout_seconds
        self._fetcher = fetcher or http_fetch
        self._opacity = opacity
        self._lock = threading.Lock()
        self._state = WatermarkState.UNFETCHED
        self._image: Optional[Image.Image] = None

    @property
    def state(self) -> WatermarkState:
        with self._lock:
            return self._state

    def get(self) -> Optional[Image.Image]:
        """The watermark, fetching it on first use. Never raises."""
        with self._lock:
            if self._state != WatermarkState.UNFETCHED:
                return self._image

        image = self._load()

        with self._lock:
            if self._state == WatermarkState.UNFETCHED:
                self._image = image
                self._state = WatermarkState.READY if image is not None else WatermarkState.ABSENT
            return self._image

    def reset(self) -> None:
        """Forget the cached result; the next get() fetches again."""
        with self._lock:
            self._state = WatermarkState.UNFETCHED
            self._image = None

    def _load(self) -> Optional[Image.Image]:
        if not self._url:
            return None

        try:
            resource = self._fetcher(self._url, self._timeout)
        except requests.RequestException as e:
            logger.warning("watermark_fetch_failed", url=self._url, error=str(e))
            return None

        if not 200 <= resource.status_code < 300:
            logger.warning("watermark_unavailable", url=self._url, status=resource.status_code)
            return None
        if not resource.content_type.startswith("image/"):
            logger.warning("watermark_not_an_image", url=self._url, content_type=resource.content_type)
            return None

        try:
            image = Image.open(io.BytesIO(resource.body))
            image.load()
            return apply_opacity(image, self._opacity)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            # DecompressionBombError is neither OSError nor ValueError
            logger.warning("watermark_decode_failed", url=self._url, error=str(e))
            return None
