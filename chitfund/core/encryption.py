from cryptography.fernet import Fernet, InvalidToken
from typing import Awaitable, TypeVar
import asyncio
import base64
import hashlib
import logging

from chitfund.core.config import settings
from chitfund.core.exceptions import UploadTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EncryptionCodec:
    """
    Symmetric codec for opaque strings such as base64 encoded KYC images.

    The Fernet key is derived from one static secret, so any process holding
    the same secret can read what another wrote.
    """

    def __init__(self, secret: str):
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())
        self.cipher = Fernet(key)

    def encrypt(self, data: str) -> str:
        """Encrypt a string; empty input stays empty"""
        if not data:
            return ""
        return self.cipher.encrypt(data.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a string; unreadable ciphertext yields an empty string"""
        if not ciphertext:
            return ""
        try:
            return self.cipher.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError) as e:
            logger.error(f"Decryption failed: {e!r}")
            return ""


codec = EncryptionCodec(settings.ENCRYPTION_KEY)


async def run_with_timeout(awaitable: Awaitable[T], seconds: float) -> T:
    """Bound a document write by a timer; on timeout the write is cancelled, committed steps stay"""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Document write timed out after {seconds}s")
        raise UploadTimeoutError()
