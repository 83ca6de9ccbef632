"""Remote effect-generation service interface and its HTTP adapter."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
import pydantic

from ..config import Config
from ..constants import TRANSIENT_HTTP_STATUSES
from ..exceptions import BlobNotFoundError, HardServiceError, TransientError
from ..models import ShadowParams
from ..schemas import JobStatusResponse, ShadowParameters, SubmitResponse

logger = logging.getLogger("studioshot.services.effect_service")


class EffectService(ABC):
    """Asynchronous shadow-effect generation.

    ``submit`` starts a job and returns its id; ``status`` reports progress;
    ``fetch_result`` downloads a finished result.
    """

    @abstractmethod
    async def submit(self, image_ref: str, params: ShadowParams) -> str:
        """Start a job for one image and return its id."""

    @abstractmethod
    async def status(self, job_id: str) -> JobStatusResponse:
        """Return the current status of a job."""

    @abstractmethod
    async def fetch_result(self, result_ref: str) -> bytes:
        """Download the bytes of a finished result."""


class HttpEffectService(EffectService):
    """EffectService backed by the processing HTTP API.

    Transport failures, timeouts and 408/429/5xx responses raise
    ``TransientError``; any other 4xx response raises ``HardServiceError``.
    Retrying is left to the caller.
    """

    SUBMIT_PATH = "/api/process-image"
    STATUS_PATH = "/api/job-status/{job_id}"

    def __init__(
        self,
        base_url: str = Config.SERVICE_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = Config.SERVICE_CONNECT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> HttpEffectService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def submit(self, image_ref: str, params: ShadowParams) -> str:
        payload = {
            "image": image_ref,
            "options": {"shadow": ShadowParameters.from_params(params).model_dump()},
        }
        response = await self._request("POST", self.SUBMIT_PATH, json=payload)
        body = self._parse(SubmitResponse, response)
        logger.debug("Submitted job %s", body.job_id)
        return body.job_id

    async def status(self, job_id: str) -> JobStatusResponse:
        response = await self._request("GET", self.STATUS_PATH.format(job_id=job_id))
        return self._parse(JobStatusResponse, response)

    async def fetch_result(self, result_ref: str) -> bytes:
        response = await self._request("GET", result_ref, missing=BlobNotFoundError)
        return response.content

    async def _request(
        self,
        method: str,
        path: str,
        missing: type[HardServiceError] = HardServiceError,
        **kwargs: Any,
    ) -> httpx.Response:
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientError(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientError(f"{method} {url} failed: {exc}") from exc

        if response.status_code in TRANSIENT_HTTP_STATUSES or response.status_code >= 500:
            raise TransientError(f"{method} {url} returned {response.status_code}")
        if response.status_code == 404:
            raise missing(f"{method} {url} returned 404")
        if response.status_code >= 400:
            raise HardServiceError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    @staticmethod
    def _parse(model: type[pydantic.BaseModel], response: httpx.Response) -> Any:
        try:
            return model.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as exc:
            raise HardServiceError(f"Unexpected response body: {response.text[:200]}") from exc
