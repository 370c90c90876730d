"""
Base text-generation provider interface.
All provider adapters share one capability: generate a reply from a system
instruction, prior turns and a new user message.

Version: 1.0.0
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from ..models.conversation import Message

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base exception for text-generation provider failures."""

    retryable = False

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ProviderTimeoutError(ProviderError):
    """Provider did not answer in time."""

    retryable = True


class ProviderConnectionError(ProviderError):
    """Transport failure reaching the provider."""

    retryable = True


class ProviderResponseError(ProviderError):
    """Provider answered with an error status or an unusable payload."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status: Optional[int] = None
    ):
        super().__init__(message, provider)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status is not None and (self.status == 429 or self.status >= 500)


class TextGenerator(ABC):
    """
    Abstract base class for text-generation providers.

    Subclasses build the provider-specific request in ``generate``; the
    base class owns the HTTP session and maps transport and status
    failures onto the ProviderError hierarchy.
    """

    name: str = "base"

    def __init__(
        self,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 300,
        request_timeout: float = 30.0
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.session: Optional[ClientSession] = None

    @abstractmethod
    async def generate(
        self,
        system_instruction: str,
        history: Sequence[Message],
        message: str
    ) -> str:
        """
        Generate a reply.

        Args:
            system_instruction: Instruction framing the conversation
            history: Prior turns, oldest first
            message: New user message

        Returns:
            Reply text

        Raises:
            ProviderError: On any provider or transport failure
        """
        pass

    def _get_session(self) -> ClientSession:
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(
                limit=10,
                limit_per_host=5,
                ttl_dns_cache=300
            )
            self.session = ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                connector=connector,
                headers={
                    "User-Agent": "SupportRelay/1.0",
                    "Accept": "application/json"
                }
            )
        return self.session

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body."""
        session = self._get_session()

        try:
            async with session.post(url, json=payload, headers=headers, params=params) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise ProviderResponseError(
                        f"{self.name} returned HTTP {response.status}: {body[:200]}",
                        provider=self.name,
                        status=response.status
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderResponseError(
                        f"{self.name} returned invalid JSON: {e}",
                        provider=self.name,
                        status=response.status
                    )

        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{self.name} request timed out after {self.request_timeout}s",
                provider=self.name
            ) from e
        except ClientError as e:
            raise ProviderConnectionError(
                f"{self.name} request failed: {e}",
                provider=self.name
            ) from e

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None
        logger.info(f"✓ Closed {self.name} provider session")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(model='{self.model}')>"


__all__ = [
    'TextGenerator',
    'ProviderError',
    'ProviderTimeoutError',
    'ProviderConnectionError',
    'ProviderResponseError'
]
