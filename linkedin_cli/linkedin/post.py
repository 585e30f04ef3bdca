"""LinkedIn post creation.

Builds the ``/rest/posts`` payload from plain text (hashtags turned into
LinkedIn's hashtag markup) and an optional single media attachment, uploads
the attachment first when one is given, and submits the post.
"""
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .client import ErrorCategory, LinkedInAPIError, LinkedInClient
from .media import person_urn, upload_document, upload_image

logger = logging.getLogger(__name__)

HASHTAG_PATTERN = re.compile(r"#([a-zA-Z0-9_]+)")
ATTACHMENT_TITLE = "Attachment"


class PostCreationError(Exception):
    """Raised when post creation fails."""

    def __init__(self, message: str, category: Optional[ErrorCategory] = None):
        super().__init__(message)
        self.category = category


class PostVisibility(str, Enum):
    """Valid post visibility values."""
    PUBLIC = "PUBLIC"
    CONNECTIONS = "CONNECTIONS"


class MediaAttachment(BaseModel):
    id: str
    title: str = ATTACHMENT_TITLE


class PostContent(BaseModel):
    media: MediaAttachment


class Distribution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    feed_distribution: str = Field(default="MAIN_FEED", alias="feedDistribution")


class PostPayload(BaseModel):
    """Body of a ``POST /rest/posts`` request."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    author: str
    commentary: str
    visibility: PostVisibility = PostVisibility.PUBLIC
    distribution: Distribution = Field(default_factory=Distribution)
    lifecycle_state: str = Field(default="PUBLISHED", alias="lifecycleState")
    is_reshare_disabled_by_author: bool = Field(default=False, alias="isReshareDisabledByAuthor")
    content: Optional[PostContent] = None

    def to_request_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PostRequest(BaseModel):
    """LinkedIn post request model."""
    text: str
    visibility: PostVisibility = PostVisibility.PUBLIC
    image: Optional[Path] = None
    pdf: Optional[Path] = None

    @model_validator(mode="after")
    def check_single_attachment(self) -> "PostRequest":
        if self.image and self.pdf:
            raise ValueError("Image and PDF are incompatible, choose one")
        return self


def convert_hashtags(text: str) -> str:
    """Replace ``#word`` tokens with LinkedIn's hashtag markup."""
    return HASHTAG_PATTERN.sub(lambda match: f"{{hashtag|\\#|{match.group(1)}}}", text)


def prepare_commentary(text: str) -> str:
    """Turn raw post text into the commentary sent to LinkedIn.

    Literal ``\\n`` sequences typed on a shell command line become newlines.
    """
    return convert_hashtags(text).replace("\\n", "\n")


def build_post_payload(
    author: str,
    commentary: str,
    media_id: Optional[str] = None,
    visibility: PostVisibility = PostVisibility.PUBLIC,
) -> PostPayload:
    content = PostContent(media=MediaAttachment(id=media_id)) if media_id else None
    return PostPayload(
        author=person_urn(author),
        commentary=commentary,
        visibility=visibility,
        content=content,
    )


async def create_post(client: LinkedInClient, payload: PostPayload) -> str:
    """Submit ``payload`` and return the new post's id (``x-restli-id``)."""
    try:
        response = await client.post(client.settings.LINKEDIN_POSTS_PATH, json=payload.to_request_json())
    except LinkedInAPIError as e:
        raise PostCreationError(f"Error occurred while publishing to LinkedIn: {e}", e.category) from e

    post_id = response.headers.get("x-restli-id")
    if not post_id:
        raise PostCreationError("No post ID returned from LinkedIn")

    logger.info(f"✅ Published, id {post_id}")
    return post_id


async def publish_post(client: LinkedInClient, request: PostRequest, author: str) -> str:
    """Upload the attachment (if any), then create the post.

    Returns the post id. Upload failures propagate as ``LinkedInAPIError``;
    a failed post creation raises :class:`PostCreationError`.
    """
    media_id = None
    if request.image:
        media_id = await upload_image(client, request.image, author)
    elif request.pdf:
        media_id = await upload_document(client, request.pdf, author)

    payload = build_post_payload(author, prepare_commentary(request.text), media_id, request.visibility)
    try:
        return await create_post(client, payload)
    except PostCreationError:
        if media_id:
            logger.warning(f"⚠️  Uploaded media {media_id} is not attached to any post")
        raise
