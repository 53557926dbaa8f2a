"""
Image attachments for multimodal models.

Images are read once from disk and sent base64-encoded: as a bare string
list for Ollama, as data URLs inside chat message parts for OpenAI.
"""

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path


class ImageError(Exception):
    """Raised when an image attachment cannot be read or is not an image."""


@dataclass(frozen=True)
class ImageData:
    mimetype: str
    contents: bytes

    def __repr__(self) -> str:
        # Never dump the raw bytes into logs
        return f"ImageData(mimetype={self.mimetype!r}, size={len(self.contents)})"

    def as_base64(self) -> str:
        return base64.b64encode(self.contents).decode("ascii")

    def as_data_url(self) -> str:
        return f"data:{self.mimetype};base64,{self.as_base64()}"


def load_image(path: str | Path) -> ImageData:
    """Read an image file; the MIME type comes from its extension."""
    path = Path(path)
    mimetype, _ = mimetypes.guess_type(path.name)
    if not mimetype or not mimetype.startswith("image/"):
        raise ImageError(f"{path} does not look like an image file")

    try:
        contents = path.read_bytes()
    except OSError as exc:
        raise ImageError(f"Could not read image {path}: {exc}") from exc

    return ImageData(mimetype=mimetype, contents=contents)
