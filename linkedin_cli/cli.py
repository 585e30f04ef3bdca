"""Command line entry point: ``linkedin-publish``."""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from . import __version__
from .config.settings import ConfigurationError, Settings, load_settings
from .linkedin.auth import AuthError, login
from .linkedin.post import PostVisibility
from .publisher import PublishOptions, run
from .utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="linkedin-publish",
        description="A cli tool to publish to LinkedIn. Use 'linkedin-publish login' to start the OAuth flow.",
    )
    parser.add_argument("text", nargs="*",
                        help="the text (or file path if -f is specified) to publish")
    parser.add_argument("-i", "--image", type=Path, metavar="FILE", help="attach an image to the post")
    parser.add_argument("--pdf", type=Path, metavar="FILE",
                        help="attach a pdf to the post (useful for carousels)")
    parser.add_argument("-f", "--file", action="store_true", help="text is a file path to post")
    parser.add_argument("-p", "--preview", action="store_true", help="don't publish, only show the post")
    parser.add_argument("--footer", help="a comma separated list of hashtags to include as footer")
    parser.add_argument("-t", "--token", help="oauth token")
    parser.add_argument("-u", "--user", help="linkedin author userId")
    parser.add_argument("--visibility", choices=[v.value for v in PostVisibility],
                        default=PostVisibility.PUBLIC.value, help="post visibility (default: PUBLIC)")
    parser.add_argument("--credentials-file", type=Path, default=None,
                        help="credential dotfile (default: ~/.linkedincli)")
    parser.add_argument("--log-level", default=None, help="logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _load_settings(credentials_file: Optional[Path], log_level: Optional[str]) -> Optional[Settings]:
    """Load settings and set up logging; None if the configuration is invalid."""
    try:
        settings = load_settings(credentials_file)
    except ValidationError as e:
        configure_logging(log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        return None
    configure_logging(log_level or settings.LOG_LEVEL)
    return settings


def _login_command(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(prog="linkedin-publish login", description="start the oauth flow")
    parser.add_argument("--credentials-file", type=Path, default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    settings = _load_settings(args.credentials_file, args.log_level)
    if settings is None:
        return 1
    try:
        asyncio.run(login(settings))
    except (AuthError, ConfigurationError) as e:
        logger.error(str(e))
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    try:
        # "login" is a subcommand; anything else is post text
        if argv[:1] == ["login"]:
            return _login_command(argv[1:])

        args = _parse_args(argv)
        settings = _load_settings(args.credentials_file, args.log_level)
        if settings is None:
            return 1
        try:
            options = PublishOptions(
                footer=args.footer,
                image=args.image,
                pdf=args.pdf,
                token=args.token,
                user=args.user,
                preview=args.preview,
                file=args.file,
                visibility=args.visibility,
            )
        except ValidationError as e:
            logger.error(f"Invalid options: {e}")
            return 1
        ok = asyncio.run(run(args.text, options, settings))
        return 0 if ok else 1
    except KeyboardInterrupt:
        print("\n👋 Shutting down...")
        return 130


if __name__ == "__main__":
    sys.exit(main())
