from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final
from urllib.parse import urlsplit

from pydantic import ValidationError

from placeholder_media.core.config import settings
from placeholder_media.core.errors import MediaValidationError
from placeholder_media.schemas.media import (
    AssetDescriptor,
    ImageTransformOptions,
    MediaAreaLiteral,
    MediaKindLiteral,
    VideoTransformOptions,
)


VIDEO_EXTENSIONS: Final[frozenset[str]] = frozenset({"mp4", "webm", "mov", "avi", "wmv", "flv", "mkv", "m4v"})
CROPPING_MODES: Final[frozenset[str]] = frozenset({"fill", "crop", "thumb"})
SRCSET_WIDTHS: Final[tuple[int, ...]] = (640, 750, 828, 1080, 1200, 1920, 2048, 3840)
VIDEO_SOURCE_FORMATS: Final[tuple[str, ...]] = ("mp4", "webm")
VIDEO_SOURCE_WIDTHS: Final[tuple[int, ...]] = (480, 720, 1080)
DEFAULT_VIDEO_FORMAT: Final[str] = "mp4"

# Option name -> delivery token prefix, in emission order.
_IMAGE_TOKENS: Final[tuple[tuple[str, str], ...]] = (
    ("crop", "c"),
    ("gravity", "g"),
    ("width", "w"),
    ("height", "h"),
    ("quality", "q"),
    ("format", "f"),
    ("effect", "e"),
    ("blur", "e_blur:"),
    ("background", "b"),
    ("overlay", "l"),
    ("angle", "a"),
)
_TOKEN_TO_OPTION: Final[dict[str, str]] = {
    "c": "crop",
    "g": "gravity",
    "w": "width",
    "h": "height",
    "q": "quality",
    "f": "format",
    "e": "effect",
    "b": "background",
    "l": "overlay",
    "a": "angle",
}
_INT_OPTIONS: Final[frozenset[str]] = frozenset({"width", "height", "quality", "blur", "angle"})


@dataclass(frozen=True, slots=True)
class AreaPlacement:
    path: str
    width: int
    height: int
    crop: str
    gravity: str | None = None

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0


AREA_PLACEMENTS: Final[dict[str, AreaPlacement]] = {
    "hero": AreaPlacement("hero", 1920, 1080, "fill", "auto"),
    "article": AreaPlacement("articles", 1200, 675, "fill", "auto"),
    "service": AreaPlacement("services", 800, 600, "fill", "auto"),
    "team": AreaPlacement("team/headshots", 600, 800, "fill", "face"),
    "gallery": AreaPlacement("gallery", 800, 600, "fill", "auto"),
    "logo": AreaPlacement("branding", 200, 0, "scale"),
    "video-thumbnail": AreaPlacement("videos/thumbnails", 1280, 720, "fill", "auto"),
}


def placement_for(area: MediaAreaLiteral | None) -> AreaPlacement | None:
    return AREA_PLACEMENTS.get(area) if area else None


def _is_absolute_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def classify_media_type(public_id: str) -> MediaKindLiteral:
    """Guess the resource type from the extension of the id's last path segment."""
    path = urlsplit(public_id).path if _is_absolute_url(public_id) else public_id
    segment = path.rstrip("/").rsplit("/", 1)[-1]
    if "." not in segment:
        return "image"
    extension = segment.rsplit(".", 1)[-1].lower()
    return "video" if extension in VIDEO_EXTENSIONS else "image"


def _coerce_options(model: type[ImageTransformOptions] | type[VideoTransformOptions], options: Any):
    if options is None:
        return model()
    if isinstance(options, model):
        return options
    if not isinstance(options, Mapping):
        raise MediaValidationError("transformation options must be an object")
    try:
        return model.model_validate(dict(options))
    except ValidationError as exc:
        raise MediaValidationError(f"invalid transformation options: {exc.errors()[0]['msg']}") from exc


def _split_target(target: AssetDescriptor | str) -> tuple[str, AssetDescriptor | None]:
    if isinstance(target, AssetDescriptor):
        return target.id, target
    public_id = str(target or "").strip()
    if not public_id:
        raise MediaValidationError("public id is required")
    return (public_id if _is_absolute_url(public_id) else public_id.lstrip("/")), None


def _delivery_url(resource_type: str, transformation: str, public_id: str) -> str:
    base = settings.cloudinary_delivery_base_url.rstrip("/")
    parts = [base, settings.cloudinary_cloud_name, resource_type, "upload"]
    if transformation:
        parts.append(transformation)
    parts.append(public_id)
    return "/".join(parts)


def _image_values(options: ImageTransformOptions, descriptor: AssetDescriptor | None, use_defaults: bool) -> dict[str, Any]:
    values = options.model_dump(exclude_none=True)
    if descriptor is not None and use_defaults:
        defaults = descriptor.default_options
        for key in ("width", "quality", "format"):
            if key not in values and getattr(defaults, key) is not None:
                values[key] = getattr(defaults, key)
        placement = placement_for(descriptor.area)
        if placement is not None and "crop" not in values and ("width" in values or "height" in values):
            values["crop"] = placement.crop
            if placement.gravity and "gravity" not in values:
                values["gravity"] = placement.gravity
    values.setdefault("quality", "auto")
    values.setdefault("format", "auto")
    # Gravity only steers modes that actually cut pixels away.
    if values.get("crop") not in CROPPING_MODES:
        values.pop("gravity", None)
    return values


def image_transformation(values: Mapping[str, Any]) -> str:
    tokens: list[str] = []
    for option, prefix in _IMAGE_TOKENS:
        value = values.get(option)
        if value is None:
            continue
        separator = "" if prefix.endswith(":") else "_"
        tokens.append(f"{prefix}{separator}{value}")
    return ",".join(tokens)


def build_image_url(
    target: AssetDescriptor | str,
    options: Mapping[str, Any] | ImageTransformOptions | None = None,
    *,
    use_defaults: bool = True,
) -> str:
    """Delivery URL for an image.

    Call-site options win; missing width/quality/format come from the descriptor's
    defaults, then from the system defaults (original width, automatic quality and
    format). Unknown option keys are ignored.
    """
    public_id, descriptor = _split_target(target)
    if _is_absolute_url(public_id):
        return public_id
    parsed = _coerce_options(ImageTransformOptions, options)
    values = _image_values(parsed, descriptor, use_defaults)
    return _delivery_url("image", image_transformation(values), public_id)


def build_video_url(
    target: AssetDescriptor | str,
    options: Mapping[str, Any] | VideoTransformOptions | None = None,
    *,
    use_defaults: bool = True,
) -> str:
    public_id, descriptor = _split_target(target)
    if _is_absolute_url(public_id):
        return public_id
    parsed = _coerce_options(VideoTransformOptions, options)
    values = parsed.model_dump(exclude_none=True)
    if descriptor is not None and use_defaults:
        defaults = descriptor.default_options
        if "width" not in values and defaults.width is not None:
            values["width"] = defaults.width
        if "quality" not in values and defaults.quality is not None:
            values["quality"] = defaults.quality
        if "format" not in values and defaults.format in ("mp4", "webm", "mov"):
            values["format"] = defaults.format
    tokens = [f"f_{values.get('format', DEFAULT_VIDEO_FORMAT)}", f"q_{values.get('quality', 'auto')}"]
    if values.get("width"):
        tokens.append(f"w_{values['width']}")
    return _delivery_url("video", ",".join(tokens), public_id)


def build_url(
    target: AssetDescriptor | str,
    options: Mapping[str, Any] | None = None,
    *,
    use_defaults: bool = True,
) -> tuple[str, MediaKindLiteral]:
    """Pick the builder matching the resource type and return `(url, kind)`."""
    if isinstance(target, AssetDescriptor):
        kind = target.kind
    else:
        kind = classify_media_type(str(target or ""))
    if kind == "video":
        allowed = {
            key: value
            for key, value in (options or {}).items()
            if key in VideoTransformOptions.model_fields and not (key == "format" and value == "auto")
        }
        return build_video_url(target, allowed, use_defaults=use_defaults), kind
    return build_image_url(target, options, use_defaults=use_defaults), kind


def parse_transformation(segment: str) -> dict[str, Any]:
    """Inverse of the token syntax emitted by the builders."""
    options: dict[str, Any] = {}
    for token in filter(None, segment.split(",")):
        if token.startswith("e_blur:"):
            options["blur"] = int(token.removeprefix("e_blur:"))
            continue
        prefix, _, raw = token.partition("_")
        option = _TOKEN_TO_OPTION.get(prefix)
        if option is None or not raw:
            continue
        options[option] = int(raw) if option in _INT_OPTIONS and raw.lstrip("-").isdigit() else raw
    return options


def parse_delivery_url(url: str) -> tuple[str, dict[str, Any], str]:
    """Split a delivery URL into `(resource_type, options, public_id)`."""
    path = urlsplit(url).path
    head, marker, tail = path.partition("/upload/")
    if not marker:
        raise MediaValidationError("not a delivery URL")
    resource_type = head.rstrip("/").rsplit("/", 1)[-1]
    first, _, rest = tail.partition("/")
    if rest and ("," in first or "_" in first and first.split("_", 1)[0] in _TOKEN_TO_OPTION):
        return resource_type, parse_transformation(first), rest
    return resource_type, {}, tail


def public_id_from_url(url: str) -> str:
    if not _is_absolute_url(url) or "/upload/" not in url:
        return url
    return parse_delivery_url(url)[2]


def build_image_srcset(target: AssetDescriptor | str, options: Mapping[str, Any] | None = None) -> str:
    base = {key: value for key, value in (options or {}).items() if key != "width"}
    return ", ".join(f"{build_image_url(target, {**base, 'width': width})} {width}w" for width in SRCSET_WIDTHS)


def _media_query(width: int) -> str:
    if width <= 480:
        return "(max-width: 480px)"
    if width <= 720:
        return "(max-width: 720px)"
    return "(min-width: 721px)"


def build_video_sources(
    target: AssetDescriptor | str,
    *,
    formats: tuple[str, ...] = VIDEO_SOURCE_FORMATS,
    widths: tuple[int, ...] = VIDEO_SOURCE_WIDTHS,
    quality: int | str | None = None,
) -> list[dict[str, str]]:
    sources: list[dict[str, str]] = []
    for video_format in formats:
        for width in widths:
            opts: dict[str, Any] = {"format": video_format, "width": width}
            if quality is not None:
                opts["quality"] = quality
            sources.append(
                {"src": build_video_url(target, opts), "type": f"video/{video_format}", "media": _media_query(width)}
            )
    return sources
