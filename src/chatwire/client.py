# src/chatwire/client.py
from __future__ import annotations
import json
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import httpx

from chatwire.core.errors import (
    BackendError,
    ProviderClientError,
    ProviderError,
    TransportFailure,
)
from chatwire.core.ports import ChatReply, CompletionRequest, ModelInfo
from chatwire.providers import generic
from chatwire.providers.profile import ProviderProfile
from chatwire.providers.registry import ProviderRegistry
from chatwire.streaming.normalizer import CompletionStream

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_PROBE_TIMEOUT = 5.0


def _envelope_message(text: str) -> Optional[str]:
    """Pull the message out of an {"error": {"message": ...}} body, if it is one."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if isinstance(err, dict) and isinstance(err.get("message"), str):
        return err["message"]
    if isinstance(err, str):
        return err
    return None


def _backend_error(response: httpx.Response, prefix: str) -> BackendError:
    message = f"{prefix}: {response.status_code}"
    text = ""
    try:
        text = response.text
    except httpx.ResponseNotRead:
        pass
    detail = _envelope_message(text) if text else None
    detail = detail or text.strip()
    if detail:
        message += f" - {detail}"
    return BackendError(message, status=response.status_code, status_text=response.reason_phrase)


def _as_reply(value: Any, raw: Any) -> ChatReply:
    if isinstance(value, ChatReply):
        return value
    if isinstance(value, dict):
        message = value.get("message") if isinstance(value.get("message"), dict) else value
        return ChatReply(
            content=generic.text_or_empty(message.get("content")),
            role=message.get("role") or "assistant",
            raw=raw,
        )
    raise TypeError(f"response transform returned {type(value).__name__}")


class ChatClient:
    """
    One backend, one canonical API.

    The client works on a private copy of the provider profile, so
    set_base_url / set_api_key / merge_headers never touch the registry or
    other clients. Do not call them while a request on this client is in
    flight.
    """

    def __init__(
        self,
        provider: Union[str, ProviderProfile],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if isinstance(provider, ProviderProfile):
            self._profile = provider.copy()
        else:
            ProviderRegistry.ensure_builtins()
            self._profile = ProviderRegistry.resolve(provider)
        self.timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.Client] = None

    # ----- configuration -----

    @property
    def profile(self) -> ProviderProfile:
        return self._profile.copy()

    @property
    def provider_name(self) -> str:
        return self._profile.name

    def set_base_url(self, url: str) -> "ChatClient":
        self._profile = replace(self._profile, base_url=url)
        return self

    def set_api_key(self, key: str) -> "ChatClient":
        self._profile = replace(self._profile, api_key=key or "")
        return self

    def merge_headers(self, headers: Mapping[str, str]) -> "ChatClient":
        self._profile = replace(self._profile, headers={**self._profile.headers, **dict(headers)})
        return self

    # ----- lifecycle -----

    def _client(self) -> httpx.Client:
        if self._http is None:
            kwargs: Dict[str, Any] = {"timeout": self.timeout}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._http = httpx.Client(**kwargs)
        return self._http

    def close(self) -> None:
        if self._http is not None:
            self._http.close()
            self._http = None

    def __enter__(self) -> "ChatClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ----- operations -----

    def probe(self, timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool:
        """
        True if the model-list endpoint answers with a success status within 'timeout' seconds.
        httpx timeouts only bound each connect/read step, so the request runs in a
        daemon worker and the caller stops waiting at the deadline.
        """
        profile = self._profile
        http = self._client()
        outcome: Dict[str, bool] = {}

        def attempt() -> None:
            try:
                with http.stream(
                    "GET",
                    profile.list_url,
                    headers=profile.request_headers(),
                    timeout=httpx.Timeout(timeout),
                ) as response:
                    outcome["ok"] = response.is_success
            except Exception as exc:
                log.debug("%s: probe failed: %s", profile.name, exc)
                outcome["ok"] = False

        started = time.monotonic()
        worker = threading.Thread(target=attempt, name=f"chatwire-probe-{profile.name}", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            # abandoned; the worker's own per-step timeouts end it later
            log.debug("%s: probe gave up after %.2fs", profile.name, time.monotonic() - started)
            return False
        return outcome.get("ok", False)

    def list_models(self) -> List[ModelInfo]:
        profile = self._profile
        log.debug("%s: GET %s", profile.name, profile.list_url)
        try:
            response = self._client().get(profile.list_url, headers=profile.request_headers())
        except httpx.TransportError as exc:
            raise TransportFailure(f"Could not reach '{profile.name}' at {profile.list_url}: {exc}") from exc

        if not response.is_success:
            raise BackendError(
                f"Failed to list models: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
                status_text=response.reason_phrase,
            )

        transform = profile.from_wire_model_list or generic.from_wire_model_list
        try:
            return list(transform(response.json()))
        except Exception as exc:
            log.warning("%s: unreadable model list: %s", profile.name, exc)
            raise BackendError(
                f"Could not read model list from '{profile.name}': {exc}",
                status=response.status_code,
                status_text=response.reason_phrase,
            ) from exc

    def chat(self, request: CompletionRequest) -> Union[ChatReply, CompletionStream]:
        """
        Send one completion request.
        Returns a ChatReply, or a CompletionStream when request.streaming is set.
        The stream owns the HTTP response: iterate it to the end or close() it.
        """
        profile = self._profile
        body = self._wire_body(request)
        http = self._client()
        outgoing = http.build_request(
            "POST",
            profile.chat_url,
            headers=profile.request_headers(json_body=True),
            json=body,
        )
        log.debug("%s: POST %s (model=%s, stream=%s)", profile.name, profile.chat_url, request.model, request.streaming)
        try:
            response = http.send(outgoing, stream=request.streaming)
        except httpx.TransportError as exc:
            raise TransportFailure(f"Request to '{profile.name}' failed: {exc}") from exc

        if not response.is_success:
            try:
                if request.streaming:
                    response.read()
            except httpx.HTTPError as exc:
                log.debug("%s: could not read error body: %s", profile.name, exc)
            finally:
                response.close()
            raise _backend_error(response, "API error")

        if request.streaming:
            return CompletionStream(self._iter_body(response), profile, release=response.close)

        try:
            data = response.json()
        except ValueError as exc:
            raise BackendError(
                f"'{profile.name}' returned a non-JSON body",
                status=response.status_code,
                status_text=response.reason_phrase,
            ) from exc
        transform = profile.from_wire_response or generic.from_wire_response
        try:
            return _as_reply(transform(data), data)
        except Exception as exc:
            raise BackendError(
                f"Could not read reply from '{profile.name}': {exc}",
                status=response.status_code,
                status_text=response.reason_phrase,
            ) from exc

    # ----- internals -----

    def _wire_body(self, request: CompletionRequest) -> Dict[str, Any]:
        transform = self._profile.to_wire_request or generic.to_wire_request
        try:
            return transform(request)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderClientError(f"Could not build request for '{self._profile.name}': {exc}") from exc

    def _iter_body(self, response: httpx.Response) -> Iterable[bytes]:
        try:
            yield from response.iter_bytes()
        except (httpx.HTTPError, httpx.StreamError) as exc:
            # transport drops, bad content-encoding, consumed/closed streams
            raise TransportFailure(f"Stream from '{self._profile.name}' broke off: {exc}") from exc
