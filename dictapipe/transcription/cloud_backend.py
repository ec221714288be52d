"""Cloud speech-to-text over HTTP (Deepgram, Azure and OpenAI-compatible APIs)."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import aiohttp
import numpy as np

from ..audio.audio_saver import encode_wav
from ..endpoints import sanitize_url_for_log, truncate_for_error, validate_custom_endpoint
from ..errors import CloudRequestFailed, CloudResponseInvalid, MissingApiKey, MissingEndpoint
from ..models.settings import SttCloudConfig, SttConfig, SttProvider
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 60
AZURE_ENDPOINT_TEMPLATE = ("https://{region}.stt.speech.microsoft.com/speech/recognition/"
                           "conversation/cognitiveservices/v1")


@dataclass
class SttRequest:
    """A prepared upload: raw body for Deepgram and Azure, multipart fields otherwise."""
    url: str
    headers: Dict[str, str]
    body: Optional[bytes] = None
    fields: Dict[str, str] = field(default_factory=dict)
    file_bytes: Optional[bytes] = None


def resolve_endpoint(cloud: SttCloudConfig) -> str:
    """Endpoint URL for the configured provider.

    Raises:
        MissingEndpoint: when Azure has no region or a custom provider has no URL
        InvalidEndpoint: when a user-supplied URL fails validation
    """
    provider = cloud.provider
    if provider == SttProvider.AZURE:
        region = cloud.endpoint.strip()
        if not region:
            raise MissingEndpoint("Azure region is not configured")
        return AZURE_ENDPOINT_TEMPLATE.format(region=region)

    if provider == SttProvider.CUSTOM:
        if not cloud.endpoint:
            raise MissingEndpoint("Cloud STT endpoint is not configured")
        validate_custom_endpoint(cloud.endpoint)
        return cloud.endpoint

    endpoint = provider.default_endpoint
    if not endpoint:
        if cloud.endpoint:
            validate_custom_endpoint(cloud.endpoint)
        endpoint = cloud.endpoint
    if not endpoint:
        raise MissingEndpoint("Cloud STT endpoint is not configured")
    return endpoint


def resolve_model_id(cloud: SttCloudConfig) -> str:
    """Provider default model when it has one, else the configured model id."""
    return cloud.provider.default_model or cloud.model_id


def build_request(cloud: SttCloudConfig, wav_bytes: bytes, language: str) -> SttRequest:
    """Shape the upload for the provider's API."""
    endpoint = resolve_endpoint(cloud)
    model_id = resolve_model_id(cloud)
    language = "" if language == "auto" else language

    if cloud.provider == SttProvider.DEEPGRAM:
        url = (f"{endpoint}?model={model_id}&language={language or 'multi'}"
               f"&punctuate=true&smart_format=true")
        return SttRequest(
            url=url,
            headers={"Authorization": f"Token {cloud.api_key}", "Content-Type": "audio/wav"},
            body=wav_bytes,
        )

    if cloud.provider == SttProvider.AZURE:
        url = f"{endpoint}?language={language or 'en-US'}&format=simple"
        return SttRequest(
            url=url,
            headers={
                "Ocp-Apim-Subscription-Key": cloud.api_key,
                "Content-Type": "audio/wav; codecs=audio/pcm; samplerate=16000",
                "Accept": "application/json",
            },
            body=wav_bytes,
        )

    fields = {"model": model_id, "response_format": "json"}
    iso_language = language.split("-")[0] if language else ""
    if iso_language:
        fields["language"] = iso_language
    return SttRequest(
        url=endpoint,
        headers={"Authorization": f"Bearer {cloud.api_key}"},
        fields=fields,
        file_bytes=wav_bytes,
    )


def parse_transcript(provider: SttProvider, body: str) -> str:
    """Extract the transcript from a provider response body.

    Missing fields yield an empty string; a body that is not JSON raises
    ``CloudResponseInvalid``.
    """
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise CloudResponseInvalid(
            f"Failed to parse Cloud STT response: {e}; body: {truncate_for_error(body)}") from e
    if not isinstance(payload, dict):
        return ""

    if provider == SttProvider.DEEPGRAM:
        try:
            text = payload["results"]["channels"][0]["alternatives"][0]["transcript"]
        except (KeyError, IndexError, TypeError):
            text = ""
    elif provider == SttProvider.AZURE:
        text = payload.get("DisplayText", "")
    else:
        text = payload.get("text", "")
    return text.strip() if isinstance(text, str) else ""


class CloudSttBackend(AbstractTranscriptionBackend):
    """Uploads a WAV rendition of the recording to a cloud STT provider."""

    service_name = "cloud"

    def __init__(self, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.timeout = timeout

    def model_label(self, stt_config: SttConfig) -> str:
        cloud = stt_config.cloud
        return f"{resolve_model_id(cloud)} (Cloud/{cloud.provider.key})"

    async def _post(self, request: SttRequest) -> Tuple[int, str]:
        """Send ``request`` and return ``(status, body_text)``."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        if request.file_bytes is not None:
            data: Any = aiohttp.FormData()
            data.add_field("file", request.file_bytes, filename="audio.wav", content_type="audio/wav")
            for name, value in request.fields.items():
                data.add_field(name, value)
        else:
            data = request.body

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(request.url, headers=request.headers, data=data) as response:
                return response.status, await response.text()

    def transcribe(self,
                   samples_16k: np.ndarray,
                   stt_config: SttConfig,
                   app_name: str = "",
                   dictionary_terms: Sequence[str] = ()) -> str:
        cloud = stt_config.cloud
        if not cloud.api_key:
            raise MissingApiKey("Cloud STT API key is not set")

        request = build_request(cloud, encode_wav(samples_16k), stt_config.language)
        logger.info(f"Cloud STT: {cloud.provider.value} via {sanitize_url_for_log(request.url)}")

        start_time = time.time()
        try:
            status, body = asyncio.run(self._post(request))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CloudRequestFailed(f"Cloud STT request failed: {e}") from e

        if not 200 <= status < 300:
            raise CloudRequestFailed(
                f"Cloud STT returned HTTP {status}: {truncate_for_error(body)}", status=status)

        text = parse_transcript(cloud.provider, body)
        logger.debug(f"Cloud STT done ({time.time() - start_time:.2f}s, {len(text)} chars)")
        return text
