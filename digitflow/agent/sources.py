"""Asynchronous ``fetch_batch`` implementations."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping

import httpx
import numpy as np

from ..core.types import Batch, WeightPair
from ..data.csv_dataset import Dataset
from ..data.weights_store import WeightsFormatError, weights_from_json, weights_to_json

logger = logging.getLogger(__name__)


class BatchFetchError(RuntimeError):
    """Raised when a batch cannot be fetched or decoded."""


def batch_from_json(payload: Mapping[str, object]) -> Batch:
    """Decode ``{"data": [{"target": int, "image": [float, ...]}, ...]}``."""

    try:
        rows = payload["data"]
        images = [row["image"] for row in rows]  # type: ignore[index,union-attr]
        targets = [row["target"] for row in rows]  # type: ignore[index,union-attr]
    except (KeyError, TypeError) as exc:
        raise BatchFetchError(f"Malformed batch payload: {exc}") from exc
    if not images:
        raise BatchFetchError("Batch payload contains no samples")
    try:
        inputs = np.asarray(images, dtype=np.float64)
        labels = np.asarray(targets, dtype=np.int64)
    except (TypeError, ValueError) as exc:
        raise BatchFetchError(f"Batch payload is not numeric: {exc}") from exc
    if inputs.ndim != 2:
        raise BatchFetchError("Batch images must share one feature width")
    return Batch(inputs=inputs, targets=labels)


def batch_to_json(batch: Batch) -> dict:
    return {
        "data": [
            {"target": int(target), "image": [float(v) for v in image]}
            for image, target in zip(batch.inputs, batch.targets)
        ]
    }


class DatasetBatchSource:
    """Serve random blocks of an in-memory dataset."""

    def __init__(self, dataset: Dataset, rng: np.random.Generator | None = None) -> None:
        self.dataset = dataset
        self.rng = rng or np.random.default_rng()

    async def __call__(self, size: int) -> Batch:
        await asyncio.sleep(0)
        return self.dataset.sample_block(size, self.rng)


class HttpBatchSource:
    """Client for the remote data and weight service.

    Calling the instance fetches one batch (``POST /datablock``); the weight
    helpers wrap ``/weights``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def __call__(self, size: int) -> Batch:
        response = await self._request("POST", "/datablock", json={"block": int(size)})
        try:
            payload = response.json()
        except ValueError as exc:
            raise BatchFetchError("Batch response is not JSON") from exc
        batch = batch_from_json(payload)
        if len(batch) != size:
            logger.debug("Requested %d samples, received %d", size, len(batch))
        return batch

    async def get_weights(self) -> WeightPair:
        response = await self._request("GET", "/weights")
        try:
            return weights_from_json(response.json())
        except (ValueError, WeightsFormatError) as exc:
            raise BatchFetchError(f"Invalid weights response: {exc}") from exc

    async def send_weights(self, weights: WeightPair) -> None:
        await self._request("POST", "/weights", json=weights_to_json(weights))

    async def retrain(self) -> None:
        """Ask the service to re-initialise and bulk-train its stored weights."""

        await self._request("DELETE", "/weights")

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BatchFetchError(f"{method} {url} failed: {exc}") from exc
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "BatchFetchError",
    "DatasetBatchSource",
    "HttpBatchSource",
    "batch_from_json",
    "batch_to_json",
]
