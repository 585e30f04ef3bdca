"""Two-step media upload: initialize the upload, then PUT the raw bytes."""
import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from .client import LinkedInClient, json_object

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    """Raised when media upload fails."""
    pass


class MediaCategory(str, Enum):
    """Valid media categories."""
    IMAGE = "IMAGE"
    DOCUMENT = "DOCUMENT"


class UploadTarget(BaseModel):
    """Where and how a media category is uploaded.

    ``response_field`` names the key under ``value`` in the initialize
    response that carries the media id.
    """
    model_config = ConfigDict(frozen=True)

    path: str
    content_type: str
    response_field: str


UPLOAD_TARGETS = {
    MediaCategory.IMAGE: UploadTarget(path="/rest/images", content_type="image/jpeg", response_field="image"),
    MediaCategory.DOCUMENT: UploadTarget(
        path="/rest/documents", content_type="application/octet-stream", response_field="document"
    ),
}


class UploadInitResult(BaseModel):
    upload_url: str
    media_id: str


def person_urn(username: str) -> str:
    return f"urn:li:person:{username}"


async def initialize_upload(client: LinkedInClient, target: UploadTarget, author: str) -> UploadInitResult:
    payload = {
        "initializeUploadRequest": {
            "owner": person_urn(author)
        }
    }
    response = await client.post(target.path, params={"action": "initializeUpload"}, json=payload)
    try:
        value = json_object(response).get("value") or {}
        if not isinstance(value, dict):
            raise ValueError(f"value is a {type(value).__name__}")
        return UploadInitResult(upload_url=value.get("uploadUrl"), media_id=value.get(target.response_field))
    except (ValueError, ValidationError) as e:
        raise MediaUploadError(
            f"Unexpected initializeUpload response from {target.path}: {response.text}"
        ) from e


async def upload_media(client: LinkedInClient, target: UploadTarget, file_path: Path, author: str) -> str:
    """Upload ``file_path`` and return the media id (an image or document urn).

    HTTP failures propagate as :class:`~linkedin_cli.linkedin.client.LinkedInAPIError`.
    """
    data = Path(file_path).read_bytes()
    init = await initialize_upload(client, target, author)
    logger.debug(f"Uploading {file_path} ({len(data)} bytes) as {init.media_id}")

    await client.put(init.upload_url, content=data, headers={"Content-Type": target.content_type})
    logger.info(f"Uploaded {Path(file_path).name} as {init.media_id}")
    return init.media_id


async def upload_image(client: LinkedInClient, file_path: Path, author: str) -> str:
    return await upload_media(client, UPLOAD_TARGETS[MediaCategory.IMAGE], file_path, author)


async def upload_document(client: LinkedInClient, file_path: Path, author: str) -> str:
    return await upload_media(client, UPLOAD_TARGETS[MediaCategory.DOCUMENT], file_path, author)
