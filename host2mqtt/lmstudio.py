"""LM Studio model server control.

Lifecycle actions go through the ``lms`` CLI; status comes from the server's
``/api/v0/models`` endpoint.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import httpx

from .outcome import Outcome
from .shell import run_tool, tool_available
from .state import LMStudioModel, LMStudioSnapshot

LOGGER = logging.getLogger(__name__)

LMS = "lms"
STATUS_TIMEOUT_SECONDS = 5.0
LIST_TIMEOUT_SECONDS = 10.0
CLI_TIMEOUT_SECONDS = 120.0


class LMStudioError(RuntimeError):
    """Raised when the model server API answers with something unusable."""


def format_model_list(models: Iterable[LMStudioModel]) -> str:
    lines = [f"{model.model_id} ({model.model_type}, {model.state})" for model in models]
    if not lines:
        return "No models"
    return "\n".join(lines)


def _parse_models(payload: object) -> list[LMStudioModel]:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise LMStudioError("models response missing 'data' list")
    models: list[LMStudioModel] = []
    for item in payload["data"]:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        models.append(
            LMStudioModel(
                model_id=str(item["id"]),
                model_type=str(item.get("type") or ""),
                state=str(item.get("state") or ""),
            )
        )
    return models


class LMStudioClient:
    def __init__(self, api_url: str, http_client: httpx.Client | None = None) -> None:
        self._api_url = api_url.rstrip("/")
        self._http = http_client or httpx.Client()

    @property
    def models_url(self) -> str:
        return f"{self._api_url}/api/v0/models"

    def cli_available(self) -> bool:
        return tool_available(LMS)

    # Server status ---------------------------------------------------------

    def server_running(self) -> bool:
        try:
            response = self._http.get(self.models_url, timeout=STATUS_TIMEOUT_SECONDS)
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def list_models(self) -> list[LMStudioModel]:
        try:
            response = self._http.get(self.models_url, timeout=LIST_TIMEOUT_SECONDS)
        except httpx.HTTPError as exc:
            raise LMStudioError(f"failed to reach LM Studio API: {exc}") from exc
        if response.status_code != 200:
            raise LMStudioError(f"LM Studio API returned status {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise LMStudioError(f"invalid JSON from LM Studio API: {exc}") from exc
        return _parse_models(payload)

    def snapshot(self) -> LMStudioSnapshot:
        """Poll the server; an offline server yields empty model lists."""
        if not self.server_running():
            return LMStudioSnapshot(running=False)
        try:
            models = self.list_models()
        except LMStudioError as exc:
            LOGGER.warning("[lmstudio] Listing models failed: %s", exc)
            return LMStudioSnapshot(running=True)
        return LMStudioSnapshot(
            running=True,
            loaded=tuple(m for m in models if m.loaded),
            available=tuple(m for m in models if not m.loaded),
        )

    # Lifecycle -------------------------------------------------------------

    def _lms(self, *args: str) -> Outcome:
        if not self.cli_available():
            return Outcome.unavailable("lms CLI is not installed")
        outcome = run_tool([LMS, *args], timeout=CLI_TIMEOUT_SECONDS)
        if outcome.ok:
            LOGGER.info("[lmstudio] lms %s succeeded", " ".join(args))
        else:
            LOGGER.warning("[lmstudio] lms %s failed: %s", " ".join(args), outcome)
        return outcome

    def start_server(self) -> Outcome:
        return self._lms("server", "start")

    def stop_server(self) -> Outcome:
        return self._lms("server", "stop")

    def load_model(self, model_id: str) -> Outcome:
        return self._lms("load", model_id)

    def unload_model(self, model_id: str | None = None) -> Outcome:
        if model_id is None:
            return self._lms("unload", "--all")
        return self._lms("unload", model_id)
