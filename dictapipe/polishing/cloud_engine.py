"""Cloud chat completion engine for sending polishing prompts."""

import asyncio
import json
import logging
import time
from typing import Tuple

import aiohttp

from ..endpoints import sanitize_url_for_log, truncate_for_error, validate_custom_endpoint
from ..errors import CloudRequestFailed, CloudResponseInvalid, MissingApiKey, MissingEndpoint
from ..models.settings import PolishCloudConfig

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 60
TEMPERATURE = 0.1
MAX_TOKENS = 512


def resolve_endpoint(cloud: PolishCloudConfig) -> str:
    """Configured endpoint (validated) or the provider default."""
    if cloud.endpoint:
        validate_custom_endpoint(cloud.endpoint)
        return cloud.endpoint
    if not cloud.provider.default_endpoint:
        raise MissingEndpoint("Cloud API endpoint is not set")
    return cloud.provider.default_endpoint


def parse_chat_content(body: str) -> str:
    """``choices[0].message.content`` of an OpenAI-style chat completion."""
    try:
        result = json.loads(body)
    except ValueError as e:
        raise CloudResponseInvalid(f"Parse response JSON: {e}") from e
    try:
        content = result["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str):
        raise CloudResponseInvalid(f"Unexpected response format: {truncate_for_error(body)}")
    return content.strip()


class CloudChatEngine:
    """Simple engine for sending prompts to an OpenAI-compatible chat API."""

    def __init__(self, timeout: float = REQUEST_TIMEOUT_SECONDS):
        """Initialize the cloud chat engine.

        Args:
            timeout: Total request timeout in seconds
        """
        self.timeout = timeout

    async def _post(self, url: str, headers: dict, data: dict) -> Tuple[int, str]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, headers=headers, json=data) as response:
                return response.status, await response.text()

    async def send_prompt(self,
                          cloud: PolishCloudConfig,
                          system_prompt: str,
                          user_text: str,
                          temperature: float = TEMPERATURE,
                          max_tokens: int = MAX_TOKENS) -> str:
        """Send a system prompt and user message, and return the reply.

        Args:
            cloud: Provider, key, endpoint and model to use
            system_prompt: Instructions for the model
            user_text: The user message
            temperature: Sampling temperature
            max_tokens: Maximum tokens in the reply

        Returns:
            Reply text

        Raises:
            MissingApiKey, MissingEndpoint, InvalidEndpoint: on configuration problems
            CloudRequestFailed: on network failures or a non-2xx status
            CloudResponseInvalid: if the reply cannot be parsed
        """
        if not cloud.api_key:
            raise MissingApiKey("Cloud API key is not set")
        endpoint = resolve_endpoint(cloud)
        if not cloud.model_id:
            raise CloudRequestFailed("Cloud model ID is not set")

        headers = {
            "Authorization": f"Bearer {cloud.api_key}",
            "Content-Type": "application/json"
        }

        data = {
            "model": cloud.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        logger.info(f"Cloud polish: {cloud.model_id} via {sanitize_url_for_log(endpoint)}")
        start_time = time.time()
        try:
            status, body = await self._post(endpoint, headers, data)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CloudRequestFailed(f"Cloud API request failed: {e}") from e

        if not 200 <= status < 300:
            raise CloudRequestFailed(
                f"Cloud API returned HTTP {status}: {truncate_for_error(body)}", status=status)

        content = parse_chat_content(body)
        logger.debug(f"Cloud polish done: {time.time() - start_time:.2f}s, {len(content)} chars")
        return content

    def complete(self, cloud: PolishCloudConfig, system_prompt: str, user_text: str) -> str:
        """Blocking wrapper around ``send_prompt`` for worker threads."""
        return asyncio.run(self.send_prompt(cloud, system_prompt, user_text))
