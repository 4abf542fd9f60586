# artmarket/activitypub/actor.py
"""
Signing identity of a market registry.

A registry signs its notifications as one Actor. Only the private key is
persisted, as a PEM file named after the actor; the public key is derived
from it on load.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..activities import DOMAIN

logger = logging.getLogger(__name__)


def _public_pem(private_key) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@dataclass
class Actor:
    """
    A signing identity.

    Attributes:
        username: Name the actor id is built from (e.g., "market")
        public_key: PEM-encoded public key, handed to observers
        private_key: PEM-encoded private key; empty on a public-only copy
        domain: Domain the actor id is minted under
    """
    username: str
    public_key: bytes
    private_key: bytes = b""
    domain: str = DOMAIN

    @property
    def id(self) -> str:
        return f"https://{self.domain}/users/{self.username}"

    @property
    def key_id(self) -> str:
        """Key ID referenced by signatures."""
        return f"{self.id}#main-key"

    def public_only(self) -> "Actor":
        """Copy without the private key, safe to hand to observers."""
        return Actor(username=self.username, public_key=self.public_key, domain=self.domain)

    @classmethod
    def generate(cls, username: str, domain: str = DOMAIN) -> "Actor":
        """Create an actor with a fresh RSA-2048 key."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(
            username=username,
            public_key=_public_pem(private_key),
            private_key=private_pem,
            domain=domain,
        )

    @classmethod
    def from_private_pem(
        cls, username: str, private_pem: bytes, domain: str = DOMAIN
    ) -> "Actor":
        private_key = serialization.load_pem_private_key(private_pem, password=None)
        return cls(
            username=username,
            public_key=_public_pem(private_key),
            private_key=private_pem,
            domain=domain,
        )


def load_or_create_actor(key_dir: Path | str, username: str, domain: str = DOMAIN) -> Actor:
    """
    Load the actor's key from key_dir/<username>.pem, generating it on first use.

    New key files are written through a temporary file and are readable by
    the owner only.
    """
    key_dir = Path(key_dir)
    key_path = key_dir / f"{username}.pem"
    if key_path.exists():
        return Actor.from_private_pem(username, key_path.read_bytes(), domain=domain)

    actor = Actor.generate(username, domain=domain)
    key_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=key_dir, prefix=f".{username}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(actor.private_key)
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, key_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info(f"Generated signing key for {actor.id} at {key_path}")
    return actor
