"""Decide between preview, login and publish, and run the chosen branch."""
import logging
from pathlib import Path
from typing import Optional, Sequence

import httpx
from pydantic import BaseModel

from .config.settings import ConfigurationError, Settings
from .linkedin.auth import AuthError, login
from .linkedin.client import LinkedInAPIError, LinkedInClient
from .linkedin.media import MediaUploadError
from .linkedin.post import PostCreationError, PostRequest, PostVisibility, publish_post

logger = logging.getLogger(__name__)


class PublishOptions(BaseModel):
    """Command line options for a publish run."""
    footer: Optional[str] = None
    image: Optional[Path] = None
    pdf: Optional[Path] = None
    token: Optional[str] = None
    user: Optional[str] = None
    preview: bool = False
    file: bool = False
    visibility: PostVisibility = PostVisibility.PUBLIC


def format_footer(footer: Optional[str]) -> str:
    """``"a,b"`` -> ``"#a #b"``."""
    if not footer:
        return ""
    tags = [tag.strip() for tag in footer.split(",")]
    return " ".join(f"#{tag}" for tag in tags if tag)


def resolve_text(args: Sequence[str], options: PublishOptions) -> str:
    if options.file:
        if not args:
            raise ConfigurationError("A file path is required with --file")
        path = Path(args[0])
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read post text from {path}: {e}") from e
    return " ".join(args)


def compose_text(args: Sequence[str], options: PublishOptions) -> str:
    """Post text followed by the footer hashtags on their own line."""
    text = resolve_text(args, options)
    footer = format_footer(options.footer)
    if footer:
        text = f"{text}\n{footer}"
    return text


def validate_attachments(options: PublishOptions) -> None:
    if options.image and options.pdf:
        raise ConfigurationError("Image and PDF are incompatible, choose one")
    for attachment in (options.image, options.pdf):
        if attachment and not attachment.is_file():
            raise ConfigurationError(f"Attachment not found: {attachment}")


def render_preview(text: str, options: PublishOptions) -> None:
    print("-" * 60)
    print(text.replace("\\n", "\n"))
    attachment = options.image or options.pdf
    if attachment:
        print(f"\n[attachment: {attachment}]")
    print("-" * 60)


async def run(
    args: Sequence[str],
    options: PublishOptions,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Preview, log in or publish. Returns False if anything failed."""
    try:
        validate_attachments(options)
        text = compose_text(args, options)
        if not text.strip():
            raise ConfigurationError("Post text cannot be empty")

        if options.preview:
            render_preview(text, options)
            return True

        token = options.token or settings.access_token
        if not token:
            logger.info("No access token found, starting the OAuth flow")
            await login(settings, transport=transport)
            logger.info("Login complete, run the command again to publish")
            return True

        author = options.user or settings.LINKEDIN_USERNAME
        if not author:
            raise ConfigurationError("Author not provided: pass --user or set LINKEDIN_USERNAME")

        request = PostRequest(text=text, visibility=options.visibility, image=options.image, pdf=options.pdf)
        async with LinkedInClient(settings, access_token=token, transport=transport) as client:
            await publish_post(client, request, author)
        return True
    except ConfigurationError as e:
        logger.error(str(e))
    except AuthError as e:
        logger.error(f"Authentication failed: {e}")
    except (LinkedInAPIError, MediaUploadError) as e:
        logger.error(f"Upload failed: {e}")
    except PostCreationError as e:
        logger.error(str(e))
    return False
