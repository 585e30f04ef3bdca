"""Local credential file written after a successful login."""
import logging
import os
from pathlib import Path

from dotenv import set_key
from pydantic import BaseModel

logger = logging.getLogger(__name__)

TOKEN_KEY = "LINKEDIN_TOKEN"
USERNAME_KEY = "LINKEDIN_USERNAME"


class Credential(BaseModel):
    """Access token and member id obtained from the OAuth flow."""
    access_token: str
    username: str


class CredentialStore:
    """Dotenv-formatted credential file (``~/.linkedincli`` by default).

    Existing keys are overwritten in place, missing ones appended; any other
    entries (client id and secret, for example) are left untouched.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, credential: Credential) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(mode=0o600)
        set_key(self.path, TOKEN_KEY, credential.access_token, quote_mode="never")
        set_key(self.path, USERNAME_KEY, credential.username, quote_mode="never")
        # set_key rewrites through a temp file
        os.chmod(self.path, 0o600)
        logger.info(f"Saved LinkedIn credentials to {self.path}")
