"""Short code generation and custom code validation.

Generated codes are drawn from a cryptographically secure source over the
URL-safe alphabet ``A-Z a-z 0-9 _ -`` (no padding characters). Uniqueness is
probed against Redis first (cheap) and the database second (authoritative).
The probe is not atomic with the insert that follows; the unique constraint on
``short_code`` catches the remaining race.
"""

import logging
import re

from nanoid import generate

from shortener.cache import LinkCache, url_key
from shortener.config import Settings
from shortener.enums import CacheSentinel
from shortener.exceptions import CacheUnavailableError, GenerationFailedError, InvalidInputError
from shortener.store import LinkStore

__all__ = ["URL_SAFE_ALPHABET", "generate_short_code", "ShortCodeGenerator"]

URL_SAFE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
CUSTOM_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def generate_short_code(length: int = 6) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(URL_SAFE_ALPHABET, length)


class ShortCodeGenerator:
    def __init__(self, cache: LinkCache, store: LinkStore, settings: Settings, logger: logging.Logger):
        self._cache = cache
        self._store = store
        self._length = settings.SHORT_CODE_LENGTH
        self._max_attempts = settings.SHORT_CODE_MAX_ATTEMPTS
        self._min_custom = settings.CUSTOM_CODE_MIN_LENGTH
        self._max_custom = settings.CUSTOM_CODE_MAX_LENGTH
        self._logger = logger

    def normalize_custom_code(self, code: str) -> str:
        """Validate charset and length of a caller-chosen code and lower-case it."""
        code = code.strip()
        if not self._min_custom <= len(code) <= self._max_custom:
            raise InvalidInputError(
                f"Short code must be between {self._min_custom} and {self._max_custom} characters"
            )
        if not CUSTOM_CODE_PATTERN.match(code):
            raise InvalidInputError("Short code may only contain letters, digits, '-' and '_'")
        return code.lower()

    async def is_taken(self, short_code: str) -> bool:
        """Cache probe first, database count second.

        A sentinel under ``url:<code>`` means the code was looked up and found
        missing, so it does not count as taken.
        """
        try:
            cached = await self._cache.get(url_key(short_code))
        except CacheUnavailableError as exc:
            self._logger.warning(f"Cache probe for {short_code} skipped: {exc}")
            cached = None

        if cached is not None and not CacheSentinel.is_sentinel(cached):
            return True

        return await self._store.count_by_short_code(short_code) > 0

    async def generate_unique(self) -> str:
        for attempt in range(1, self._max_attempts + 1):
            code = generate_short_code(self._length)
            if not await self.is_taken(code):
                return code
            self._logger.debug(f"Generated short code {code} collided (attempt {attempt})")

        self._logger.error(f"Short code generation exhausted {self._max_attempts} attempts")
        raise GenerationFailedError()
