from __future__ import annotations

import secrets

ACCESS_TOKEN_LENGTH = 20
REFRESH_TOKEN_LENGTH = 30

# l/I/O/0 read alike in most fonts
_CONFUSABLES = str.maketrans("lIO0", "sxyz")


def friendly_token(length: int = ACCESS_TOKEN_LENGTH) -> str:
    """Generate a random URL-safe token of roughly ``length`` characters.

    ``token_urlsafe(n)`` yields about ``4n/3`` characters, so ask for
    ``3/4 * length`` random bytes.
    """
    if length <= 0:
        raise ValueError("token length must be positive")
    nbytes = max(1, (length * 3) // 4)
    return secrets.token_urlsafe(nbytes).translate(_CONFUSABLES)


class TokenCodec:
    """Mints access and refresh tokens with configured lengths."""

    def __init__(
        self,
        access_token_length: int = ACCESS_TOKEN_LENGTH,
        refresh_token_length: int = REFRESH_TOKEN_LENGTH,
    ) -> None:
        self.access_token_length = access_token_length
        self.refresh_token_length = refresh_token_length

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(settings.access_token_length, settings.refresh_token_length)

    def generate(self, length: int) -> str:
        return friendly_token(length)

    def access_token(self) -> str:
        return friendly_token(self.access_token_length)

    def refresh_token(self) -> str:
        return friendly_token(self.refresh_token_length)


__all__ = ["friendly_token", "TokenCodec", "ACCESS_TOKEN_LENGTH", "REFRESH_TOKEN_LENGTH"]
