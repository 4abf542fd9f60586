# artmarket/activitypub/signatures.py
"""
Cryptographic signatures for market activities.

Uses RSA-SHA256 Linked Data Signatures (RsaSignature2017) so an indexer
holding the registry actor's public key can check that a notification
really came from that registry and was not altered.
"""

import base64
import hashlib
import json
import time
from typing import Any, Callable, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from .actor import Actor
from ..activities import Activity

SECURITY_CONTEXT = "https://w3id.org/security/v1"


def _canonicalize(data: Dict[str, Any]) -> str:
    """
    Canonicalize JSON for signing.

    Sorted keys, no whitespace. Non-JSON identities are rendered with str().
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def _hash_sha256(data: str) -> bytes:
    return hashlib.sha256(data.encode()).digest()


def _signed_bytes(activity: Activity, options: Dict[str, Any]) -> bytes:
    """Hash of signature options followed by hash of the unsigned document."""
    document = activity.to_activitypub()
    document.pop("signature", None)
    return _hash_sha256(_canonicalize(options)) + _hash_sha256(_canonicalize(document))


def sign_activity(activity: Activity, actor: Actor) -> Activity:
    """
    Sign an activity with the actor's private key.

    Args:
        activity: The activity to sign
        actor: The actor whose key signs the activity

    Returns:
        The same activity with its signature attached
    """
    private_key = serialization.load_pem_private_key(
        actor.private_key,
        password=None,
    )

    created = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    options = {
        "@context": SECURITY_CONTEXT,
        "type": "RsaSignature2017",
        "creator": actor.key_id,
        "created": created,
    }

    signature_bytes = private_key.sign(
        _signed_bytes(activity, options),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )

    activity.signature = {
        "type": "RsaSignature2017",
        "creator": actor.key_id,
        "created": created,
        "signatureValue": base64.b64encode(signature_bytes).decode("utf-8"),
    }
    return activity


def verify_signature(activity: Activity, public_key_pem: bytes) -> bool:
    """
    Verify an activity's signature.

    Returns:
        True if signature is valid; False if missing, malformed or wrong
    """
    if not activity.signature:
        return False

    try:
        public_key = serialization.load_pem_public_key(public_key_pem)

        options = {
            "@context": SECURITY_CONTEXT,
            "type": activity.signature["type"],
            "creator": activity.signature["creator"],
            "created": activity.signature["created"],
        }

        signature_bytes = base64.b64decode(activity.signature["signatureValue"])
        public_key.verify(
            signature_bytes,
            _signed_bytes(activity, options),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True

    except (InvalidSignature, KeyError, ValueError, TypeError):
        return False


def verify_activity_origin(activity: Activity, actor: Actor) -> bool:
    """
    Verify that an activity was signed by the claimed actor.

    Args:
        activity: The activity to verify
        actor: The claimed signer

    Returns:
        True if the activity was signed by this actor
    """
    if not activity.signature:
        return False

    if activity.signature.get("creator") != actor.key_id:
        return False

    return verify_signature(activity, actor.public_key)


def make_signer(actor: Actor) -> Callable[[Activity], Activity]:
    """
    Create a signer for an ActivityFeed from an actor.

    Args:
        actor: The actor whose private key signs every emitted activity

    Returns:
        Function that signs an activity in place and returns it
    """
    def signer(activity: Activity) -> Activity:
        return sign_activity(activity, actor)
    return signer
