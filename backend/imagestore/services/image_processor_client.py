# backend/imagestore/services/image_processor_client.py
"""
HTTP client for the external image processor.

One job is one ``POST <host>:<port>/job`` with
``{pathname, commands: [...]}``. Only HTTP 200 with a well-formed body counts
as success; everything else becomes an ExternalProcessorFailure.
"""

import asyncio
from typing import Optional

import aiohttp
from loguru import logger
from pydantic import ValidationError

from ..config import Settings
from ..exceptions import ExternalProcessorFailure
from ..models.job_model import ProcessorRequest, ProcessorResponse


class ImageProcessorClient:
    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.url = settings.image_processor_url
        self.timeout = settings.image_processor_timeout
        self._session = session

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self) -> None:
        if not self._session:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def submit_job(self, request: ProcessorRequest) -> ProcessorResponse:
        """
        Send one job and wait for the processor's answer.

        Raises:
            ExternalProcessorFailure: On a non-200 status, a malformed body or
                a connection-level failure
        """
        if not self._session:
            await self.connect()

        logger.debug(f"POST {self.url} for {request.pathname} ({len(request.commands)} commands)")
        try:
            async with self._session.post(
                self.url,
                json=request.to_payload(),
                headers={"Accept": "application/json"},
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise ExternalProcessorFailure(
                        f"Image processor returned {resp.status} for {request.pathname}",
                        status=resp.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExternalProcessorFailure(
                f"Image processor unreachable for {request.pathname}: {e}"
            ) from e

        try:
            return ProcessorResponse.model_validate_json(body)
        except ValidationError as e:
            raise ExternalProcessorFailure(
                f"Malformed image processor response for {request.pathname}", status=200
            ) from e
