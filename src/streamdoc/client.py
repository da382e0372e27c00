"""HTTP streaming client for agent backends."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Protocol

import httpx
from pydantic import BaseModel, Field, field_validator

from streamdoc.assembler import Assembler, TurnResult, TurnUpdate
from streamdoc.dispatcher import RenderSink, WhitelistDispatcher
from streamdoc.extractors import ExtractorRegistry
from streamdoc.identity import new_display_id
from streamdoc.strategies import BackendStrategy, with_context

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "STREAMDOC_TOKEN"


class StreamTransportError(Exception):
    """The backend refused the turn before streaming started."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Agent backend returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ClientConfig(BaseModel):
    """Connection settings for a streaming backend.

    Args:
        base_url: Backend root, e.g. ``https://dip.aishu.cn/api/agent-app/v1``.
        token: Access token. Read from ``STREAMDOC_TOKEN`` when omitted.
            A leading ``Bearer`` prefix is accepted and stripped.
        timeout: Read timeout in seconds for the whole stream.
    """

    base_url: str = "https://dip.aishu.cn/api/agent-app/v1"
    token: str = Field(default_factory=lambda: os.getenv(TOKEN_ENV_VAR, ""))
    timeout: float = 600.0

    @field_validator("base_url")
    @classmethod
    def _require_base_url(cls, value: str) -> str:
        if not value:
            raise ValueError("base_url must not be empty")
        return value.rstrip("/")

    @field_validator("token")
    @classmethod
    def _strip_bearer(cls, value: str) -> str:
        if value[:7].lower() == "bearer ":
            return value[7:].strip()
        return value


class TurnHost(RenderSink, Protocol):
    """A render sink that also tracks when a turn starts and stops."""

    def start_turn(self, display_id: str) -> object:
        ...

    def finish_turn(self) -> None:
        ...


class StreamClient:
    """Sends a user message and assembles the streamed answer.

    ``send_message()`` drains ``iter_message()``.  ``iter_message()``
    yields a snapshot after every applied patch event.

    Args:
        config: Connection settings.
        strategy: Backend adapter (request shape and frame translation).
        host: Receives render callbacks and turn lifecycle calls.
        extractors: Tool extractor registry; built-ins when omitted.
        transport: Optional ``httpx`` transport, e.g. for tests.
    """

    def __init__(
        self,
        config: ClientConfig,
        strategy: BackendStrategy,
        host: TurnHost,
        extractors: ExtractorRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.strategy = strategy
        self.host = host
        self.assembler = Assembler(strategy, WhitelistDispatcher(host, extractors))
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def send_message(
        self,
        text: str,
        context: dict | None = None,
        conversation_id: str | None = None,
        regenerate_message_id: str | None = None,
    ) -> TurnResult:
        """Stream one turn to completion and return its result."""
        result: TurnResult | None = None
        updates = self.iter_message(text, context, conversation_id, regenerate_message_id)
        async with aclosing(updates) as stream:
            async for item in stream:
                if isinstance(item, TurnResult):
                    result = item
        if result is None:
            raise RuntimeError("iter_message() ended without emitting a TurnResult")
        return result

    async def iter_message(
        self,
        text: str,
        context: dict | None = None,
        conversation_id: str | None = None,
        regenerate_message_id: str | None = None,
    ) -> AsyncIterator[TurnUpdate | TurnResult]:
        """Stream one turn, yielding each update and finally the result.

        Raises:
            StreamTransportError: The backend answered with a non-2xx
                status before streaming.
            httpx.HTTPError: The connection failed.
        """
        body = self.strategy.build_body(
            with_context(text, context),
            conversation_id=conversation_id,
            regenerate_message_id=regenerate_message_id,
            custom_data=(context or {}).get("data"),
        )
        display_id = regenerate_message_id or new_display_id()

        async with httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout, connect=10.0),
            transport=self._transport,
        ) as client:
            async with client.stream(
                "POST", self.strategy.request_path(),
                json=body, headers=self._headers(),
            ) as response:
                if not response.is_success:
                    error_body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(
                        f"{self.strategy.name} backend rejected turn: "
                        f"{response.status_code} {error_body[:200]}"
                    )
                    raise StreamTransportError(response.status_code, error_body)

                self.host.start_turn(display_id)
                turn = self.assembler.iter_turn(response.aiter_bytes(), display_id)
                try:
                    async with aclosing(turn) as updates:
                        async for item in updates:
                            yield item
                finally:
                    self.host.finish_turn()
