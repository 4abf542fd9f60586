# artmarket/activitypub/__init__.py
"""
Signed market notifications.

A registry may sign every activity it emits with an actor key so indexers
and other observers can check where a notification came from.

Core concepts:
- Actor: A signing identity with an RSA key pair, kept as a PEM file
- Signature: RsaSignature2017 proof attached to an Activity
"""

from .actor import Actor, load_or_create_actor
from .signatures import (
    make_signer,
    sign_activity,
    verify_activity_origin,
    verify_signature,
)

__all__ = [
    "Actor",
    "load_or_create_actor",
    "make_signer",
    "sign_activity",
    "verify_signature",
    "verify_activity_origin",
]
