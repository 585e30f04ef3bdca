"""LinkedIn publishing CLI.

This package publishes posts to LinkedIn from the command line, running the
OAuth 2.0 authorization code flow through a short-lived local callback server
when no access token is available yet.

Features:
- OAuth 2.0 login with a local callback listener
- Text posts with hashtag markup and footer hashtags
- Image or PDF (document) attachments

Usage:
    Log in: linkedin-publish login
    Publish: linkedin-publish "Hello #python" --footer dev,cli
"""
import logging

# Set up a null handler to avoid "No handler found" warnings
logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
