from __future__ import annotations

import logging

from jose import JWTError, jwt

from chat_sync.core.errors import RealtimeConnectionError

logger = logging.getLogger(__name__)


def resolve_user_id(token: str) -> str:
    # Signature is verified server-side during the handshake.
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError as exc:
        logger.warning("Identity token could not be decoded")
        raise RealtimeConnectionError(code="invalid_token", message="Identity token is malformed") from exc

    subject = payload.get("sub") or payload.get("id") or payload.get("userId")
    if isinstance(subject, int):
        subject = str(subject)
    if not isinstance(subject, str) or not subject:
        logger.warning("Identity token has no usable subject")
        raise RealtimeConnectionError(code="invalid_token", message="Token payload is invalid")

    logger.debug("Identity token resolved user_id=%s", subject)
    return subject
