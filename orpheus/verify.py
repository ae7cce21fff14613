"""
Inbound request verification for Discord's interactions endpoint.

Discord signs ``timestamp + body`` with the application's Ed25519 key; the
signature arrives hex-encoded in ``X-Signature-Ed25519``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .types import Interaction
from .utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    interaction: Optional[Interaction] = None


INVALID = VerificationResult(valid=False)


class InteractionVerifier:
    def __init__(self, public_key: str):
        self._key = VerifyKey(bytes.fromhex(public_key))

    def verify(
        self,
        raw_body: bytes,
        signature: Optional[str],
        timestamp: Optional[str],
    ) -> VerificationResult:
        if not signature or not timestamp or not raw_body:
            return INVALID

        try:
            self._key.verify(timestamp.encode() + raw_body, bytes.fromhex(signature))
        except (BadSignatureError, ValueError):
            logger.warning("⚠ Rejected interaction with bad signature", extra={"subsys": "verify"})
            return INVALID

        try:
            interaction = Interaction.from_payload(json.loads(raw_body))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"⚠ Signed body is not a valid interaction: {e}", extra={"subsys": "verify"})
            return INVALID

        return VerificationResult(valid=True, interaction=interaction)
