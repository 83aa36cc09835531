# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Ollama AI Gateway (v0.4.0)

Non-streaming generation against a local or containerised Ollama server.

    POST /api/generate  {"model": ..., "prompt": ..., "stream": false}
    GET  /api/tags      health check

Errors:
    404                     -> ModelNotFoundError (never retried)
    httpx.TimeoutException  -> GatewayTimeoutError
    other HTTP / transport  -> GatewayError
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from moonlight.core.errors import GatewayError, GatewayTimeoutError, ModelNotFoundError
from moonlight.core.logging import log_ai_call
from moonlight.core.models import AIResponse

logger = logging.getLogger("moonlight.integrations.ollama")

OLLAMA_BASE_URL = "http://localhost:11434"
OLLAMA_TIMEOUT = 300
HEALTH_TIMEOUT = 5


class OllamaGateway:
    """AI gateway backed by an Ollama server."""

    def __init__(
        self,
        server_url: str = OLLAMA_BASE_URL,
        model: str = "codellama:13b-instruct",
        timeout_seconds: float = OLLAMA_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    async def generate(self, prompt: str) -> AIResponse:
        """Send one prompt and wait for the complete response."""
        url = f"{self.server_url}/api/generate"
        payload = {"model": self.model, "prompt": prompt, "stream": False}
        start = time.monotonic()
        try:
            async with self._client(self.timeout_seconds) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as exc:
            log_ai_call(logger, self.model, latency_ms=_ms(start), success=False)
            raise GatewayTimeoutError(
                f"AI request timed out after {self.timeout_seconds}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            log_ai_call(logger, self.model, latency_ms=_ms(start), success=False)
            if exc.response.status_code == 404:
                raise ModelNotFoundError(self.model, exc.response.text[:200]) from exc
            raise GatewayError(
                f"AI server returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            log_ai_call(logger, self.model, latency_ms=_ms(start), success=False)
            raise GatewayError(f"AI request failed: {exc}") from exc

        response = AIResponse(
            text=data.get("response", "") or "",
            done=bool(data.get("done", False)),
            prompt_tokens=int(data.get("prompt_eval_count") or 0),
            response_tokens=int(data.get("eval_count") or 0),
            duration_seconds=time.monotonic() - start,
            model=data.get("model", self.model),
        )
        log_ai_call(
            logger,
            self.model,
            prompt_tokens=response.prompt_tokens,
            response_tokens=response.response_tokens,
            latency_ms=_ms(start),
            done=response.done,
        )
        return response

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------
    async def health_check(self) -> bool:
        """True when the server answers /api/tags with 200."""
        try:
            async with self._client(HEALTH_TIMEOUT) as client:
                resp = await client.get(f"{self.server_url}/api/tags")
                return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.debug("Health check failed: %s", exc)
            return False

    async def wait_until_healthy(self, max_attempts: int = 10, delay_seconds: float = 3.0) -> bool:
        for attempt in range(1, max_attempts + 1):
            if await self.health_check():
                logger.info("AI server healthy (attempt %d/%d)", attempt, max_attempts)
                return True
            if attempt < max_attempts:
                logger.info(
                    "AI server not ready, retrying in %.1fs (attempt %d/%d)",
                    delay_seconds,
                    attempt,
                    max_attempts,
                )
                await asyncio.sleep(delay_seconds)
        logger.error("AI server did not become healthy after %d attempts", max_attempts)
        return False

    async def verify_model(self) -> None:
        """Send a trivial prompt; raises ModelNotFoundError or GatewayError."""
        try:
            await self.generate("test")
        except ModelNotFoundError:
            raise
        except GatewayError as exc:
            if "not found" in str(exc).lower():
                raise ModelNotFoundError(self.model, str(exc)) from exc
            raise


def _ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
