from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


MediaKindLiteral = Literal["image", "video"]
MediaAreaLiteral = Literal["hero", "article", "service", "team", "gallery", "logo", "video-thumbnail"]
CropModeLiteral = Literal["fill", "fit", "scale", "crop", "thumb"]
VideoFormatLiteral = Literal["mp4", "webm", "mov"]
QualityValue = int | Literal["auto"]


def _check_quality(value: QualityValue | None) -> QualityValue | None:
    if isinstance(value, int) and not 1 <= value <= 100:
        raise ValueError("quality must be between 1 and 100 or 'auto'")
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AssetDimensions(_CamelModel):
    width: int = Field(ge=0)
    height: int = Field(ge=0)
    aspect_ratio: float | None = Field(default=None, alias="aspectRatio")


class DefaultOptions(_CamelModel):
    width: int | None = Field(default=None, gt=0)
    quality: QualityValue | None = None
    format: str | None = None

    @field_validator("quality")
    @classmethod
    def _quality_range(cls, value: QualityValue | None) -> QualityValue | None:
        return _check_quality(value)


class AssetDescriptor(_CamelModel):
    """One managed piece of media as the registry knows it."""

    id: str = Field(min_length=1)
    kind: MediaKindLiteral = "image"
    area: MediaAreaLiteral | None = None
    description: str | None = None
    dimensions: AssetDimensions | None = None
    default_options: DefaultOptions = Field(default_factory=DefaultOptions, alias="defaultOptions")
    # Set on descriptors made up for ids that are not registered; never persisted.
    synthesized: bool = Field(default=False, exclude=True)

    @field_validator("id")
    @classmethod
    def _strip_leading_slash(cls, value: str) -> str:
        cleaned = value.strip().lstrip("/")
        if not cleaned:
            raise ValueError("id must not be empty")
        return cleaned


class ImageTransformOptions(_CamelModel):
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    crop: CropModeLiteral | None = None
    gravity: str | None = None
    quality: QualityValue | None = None
    format: str | None = None
    effect: str | None = None
    blur: int | None = Field(default=None, ge=1, le=2000)
    background: str | None = None
    overlay: str | None = None
    angle: int | None = None

    @field_validator("quality")
    @classmethod
    def _quality_range(cls, value: QualityValue | None) -> QualityValue | None:
        return _check_quality(value)

    @field_validator("effect")
    @classmethod
    def _effect_not_blur(cls, value: str | None) -> str | None:
        # e_blur tokens parse back as `blur`, so they must come from that option.
        name = (value or "").strip().lower()
        if name == "blur" or name.startswith("blur:"):
            raise ValueError("use the blur option for blur effects")
        return value


class VideoTransformOptions(_CamelModel):
    width: int | None = Field(default=None, gt=0)
    format: VideoFormatLiteral | None = None
    quality: QualityValue | None = None

    @field_validator("quality")
    @classmethod
    def _quality_range(cls, value: QualityValue | None) -> QualityValue | None:
        return _check_quality(value)


class FolderNode(_CamelModel):
    name: str
    path: str
    subfolders: list[FolderNode] = Field(default_factory=list)
    # Present when the subfolders of this node could not be listed.
    error: str | None = None


class OrganizeRequest(_CamelModel):
    asset_ids: list[str] = Field(min_length=1)
    destination_folder: str | None = None
    tags: list[str] | None = None
    context: dict[str, str] | None = None
    add_tags_additively: bool = True

    @field_validator("asset_ids")
    @classmethod
    def _dedupe_ids(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for raw in value:
            cleaned = str(raw or "").strip().lstrip("/")
            if cleaned:
                seen.setdefault(cleaned, None)
        if not seen:
            raise ValueError("at least one asset id is required")
        return list(seen)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return list(dict.fromkeys(tag.strip() for tag in value if tag and tag.strip()))

    @field_validator("destination_folder")
    @classmethod
    def _clean_folder(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().strip("/") or None


class OrganizeResult(_CamelModel):
    asset_id: str = Field(alias="assetId")
    success: bool
    public_id: str | None = Field(default=None, alias="publicId")
    error: str | None = None
    status_code: int | None = Field(default=None, alias="statusCode")


class CollectionDescriptor(_CamelModel):
    name: str
    path: str
    created: bool
    source_tag: str | None = Field(default=None, alias="sourceTag")
    source_folder: str | None = Field(default=None, alias="sourceFolder")
    asset_ids: list[str] = Field(default_factory=list, alias="assetIds")
    failed: list[OrganizeResult] = Field(default_factory=list)


class RegistryMutationResult(_CamelModel):
    success: bool
    error: str | None = None
    code: str | None = None


# HTTP payloads


class OrganizeAssetsPayload(_CamelModel):
    public_ids: list[str] = Field(alias="publicIds", min_length=1)
    folder: str | None = None
    tags: list[str] | None = None
    context: dict[str, str] | None = None
    add_tags: bool = Field(default=True, alias="addTags")

    def to_request(self) -> OrganizeRequest:
        return OrganizeRequest(
            asset_ids=self.public_ids,
            destination_folder=self.folder,
            tags=self.tags,
            context=self.context,
            add_tags_additively=self.add_tags,
        )


class OrganizeAssetsResponse(_CamelModel):
    success: bool
    message: str
    results: list[OrganizeResult]


class CollectionPayload(_CamelModel):
    name: str = Field(min_length=1, max_length=255)
    tag: str | None = None
    folder: str | None = None


class CollectionResponse(_CamelModel):
    success: bool
    message: str
    result: CollectionDescriptor


class TransformPayload(_CamelModel):
    public_id: str = Field(alias="publicId", min_length=1)
    transformations: dict[str, object] = Field(default_factory=dict)


class TransformResponse(_CamelModel):
    url: str
    public_id: str = Field(alias="publicId")
    transformations: dict[str, object]
    media_type: MediaKindLiteral = Field(alias="mediaType")


class ResponsiveSize(_CamelModel):
    width: int
    url: str


class ResponsiveResponse(_CamelModel):
    url: str
    src_set: str | None = Field(default=None, alias="srcSet")
    public_id: str = Field(alias="publicId")
    is_video: bool = Field(alias="isVideo")
    sizes: list[ResponsiveSize] = Field(default_factory=list)


class OrganizersResponse(_CamelModel):
    folders: list[str]
    tags: list[str]


class ResolvedAsset(_CamelModel):
    placeholder_id: str = Field(alias="placeholderId")
    registered: bool
    asset: AssetDescriptor
    url: str
