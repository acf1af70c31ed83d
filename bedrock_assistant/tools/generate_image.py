"""GENERATE_IMAGE tool: text-to-image through the image model, saved as PNG files."""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

import click
from PIL import Image, UnidentifiedImageError

from ..errors import DecodeError, ToolExecutionError
from ..logger import get_logger
from ..messages import ToolResult
from ..structured import StructuredValue
from .base import as_object, optional_int, optional_string, require_string
from .schema import Property, PropertyType, ToolSchema, ToolSpec

_log = get_logger(__name__)

GENERATE_IMAGE_NAME = "GENERATE_IMAGE"
GENERATE_IMAGE_DESCRIPTION = "Generate an image based on user's prompt."

DEFAULT_NUMBER_OF_IMAGES = 1
DEFAULT_HEIGHT = 512
DEFAULT_WIDTH = 512

GENERATE_IMAGE_SPEC = ToolSpec(
    name=GENERATE_IMAGE_NAME,
    description=GENERATE_IMAGE_DESCRIPTION,
    input_schema=ToolSchema.build(
        {
            "prompt": Property(PropertyType.STRING,
                               "Description for the image to generate. Required."),
            "path": Property(PropertyType.STRING,
                             "The path of the folder where the generated image should be saved. "
                             "Required. Default to the current working directory."),
            "numberOfImages": Property(PropertyType.NUMBER,
                                       "The number of images to generate. Optional. "
                                       "The default value is 1."),
            "quality": Property(PropertyType.STRING,
                                "The quality of the image to generate. Optional. "
                                "Possible value: standard, premium. The default value is standard."),
            "height": Property(PropertyType.NUMBER,
                               f"The height of the image in pixels. Optional. "
                               f"The default value is {DEFAULT_HEIGHT}."),
            "width": Property(PropertyType.NUMBER,
                              f"The width of the image in pixels. Optional. "
                              f"The default value is {DEFAULT_WIDTH}."),
        },
        ["prompt", "path"],
    ),
)


# ── Image model request/response ──────────────────

class TaskType(str, Enum):
    TEXT_IMAGE = "TEXT_IMAGE"
    INPAINTING = "INPAINTING"
    OUTPAINTING = "OUTPAINTING"
    IMAGE_VARIATION = "IMAGE_VARIATION"


class ImageQuality(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(frozen=True)
class ImageGenerationConfig:
    number_of_images: Optional[int] = None
    quality: Optional[ImageQuality] = None
    height: Optional[int] = None
    width: Optional[int] = None

    def to_structured(self) -> Dict[str, StructuredValue]:
        fields = {
            "numberOfImages": self.number_of_images,
            "quality": self.quality.value if self.quality else None,
            "height": self.height,
            "width": self.width,
        }
        return {key: value for key, value in fields.items() if value is not None}


@dataclass(frozen=True)
class ImageGenerationRequest:
    text: str
    config: Optional[ImageGenerationConfig] = None
    task_type: TaskType = TaskType.TEXT_IMAGE

    def to_structured(self) -> Dict[str, StructuredValue]:
        body: Dict[str, StructuredValue] = {
            "taskType": self.task_type.value,
            "textToImageParams": {"text": self.text},
        }
        if self.config is not None:
            body["imageGenerationConfig"] = self.config.to_structured()
        return body


@dataclass(frozen=True)
class ImageGenerationResponse:
    images: List[str] = field(default_factory=list)

    @classmethod
    def from_structured(cls, data: StructuredValue) -> "ImageGenerationResponse":
        if not isinstance(data, dict) or not isinstance(data.get("images"), list):
            raise ValueError("Image response has no images list")
        images = data["images"]
        if not all(isinstance(item, str) for item in images):
            raise ValueError("Image response contains non-string images")
        return cls(list(images))


class ImageGenerator(Protocol):
    def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationResponse: ...


# ── Executor ──────────────────────────────────────

def build_request(fields: Dict[str, StructuredValue],
                  prompt_suffix: Optional[str] = None) -> ImageGenerationRequest:
    prompt = require_string(GENERATE_IMAGE_NAME, fields, "prompt", "prompt")
    require_string(GENERATE_IMAGE_NAME, fields, "path", "path to save the image")

    raw_quality = optional_string(fields, "quality")
    try:
        quality = ImageQuality(raw_quality.strip().lower()) if raw_quality else ImageQuality.STANDARD
    except ValueError:
        raise ToolExecutionError(
            GENERATE_IMAGE_NAME, f"unsupported quality: {raw_quality} (use standard or premium)"
        )

    config = ImageGenerationConfig(
        number_of_images=optional_int(fields, "numberOfImages", DEFAULT_NUMBER_OF_IMAGES),
        quality=quality,
        height=optional_int(fields, "height", DEFAULT_HEIGHT),
        width=optional_int(fields, "width", DEFAULT_WIDTH),
    )
    if config.number_of_images < 1 or config.height < 1 or config.width < 1:
        raise ToolExecutionError(
            GENERATE_IMAGE_NAME, "numberOfImages, height and width must be positive"
        )

    if prompt_suffix:
        prompt = f"{prompt} {prompt_suffix}"
    return ImageGenerationRequest(text=prompt, config=config)


def output_directory(raw_path: str) -> Path:
    """A path with a file extension means "save next to this file"."""
    path = Path(raw_path)
    if path.suffix:
        path = path.parent
    return path


def decode_image(encoded: str) -> Image.Image:
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(GENERATE_IMAGE_NAME, f"invalid base64 image data: {e}")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeError(GENERATE_IMAGE_NAME, f"cannot decode image: {e}")
    return image


class ImageGenerationTool:
    """Executor for GENERATE_IMAGE.

    Every failure (bad input, image model error, bad base64, unwritable
    directory) is reported as an error result.
    """

    def __init__(self, generator: ImageGenerator, prompt_suffix: Optional[str] = None,
                 open_images: bool = False,
                 launcher: Callable[[str], object] = click.launch):
        self.generator = generator
        self.prompt_suffix = prompt_suffix
        self.open_images = open_images
        self.launcher = launcher

    def __call__(self, tool_use_id: str, input: StructuredValue) -> ToolResult:
        try:
            fields = as_object(GENERATE_IMAGE_NAME, input)
            request = build_request(fields, self.prompt_suffix)
            directory = output_directory(fields["path"])
        except ToolExecutionError as e:
            return ToolResult.error(tool_use_id, e.message)

        try:
            response = self.generator.generate_images(request)
        except Exception as e:
            _log.warning("Image model failed: %s", e)
            return ToolResult.error(tool_use_id, f"{type(e).__name__}: {e}")

        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return ToolResult.error(tool_use_id, str(e))

        saved: List[Path] = []
        for index, encoded in enumerate(response.images):
            target = directory / f"{tool_use_id}-{index}.png"
            try:
                image = decode_image(encoded)
                image.save(target, format="PNG")
            except DecodeError as e:
                return ToolResult.error(tool_use_id, e.message)
            except (OSError, ValueError) as e:
                return ToolResult.error(tool_use_id, str(e))
            saved.append(target)
            _log.info("Saved generated image to %s", target)

        if not saved:
            return ToolResult.error(tool_use_id, "The image model returned no images.")

        if self.open_images:
            self._open(saved)
        listing = "\n".join(str(p) for p in saved)
        return ToolResult.success(tool_use_id, f"Image generated and saved.\n{listing}")

    def _open(self, paths: List[Path]) -> None:
        for path in paths:
            try:
                self.launcher(str(path))
            except Exception as e:
                _log.debug("Could not open %s: %s", path, e)
