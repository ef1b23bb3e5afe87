from typing import List, Optional
import logging
import threading
import time

from web3 import HTTPProvider

logger = logging.getLogger(__name__)

# A signed transaction is broadcast exactly once; rotating would resubmit it.
NON_RETRYABLE_METHODS = frozenset({"eth_sendRawTransaction", "eth_sendTransaction"})

RATE_TOKENS = (
    "rate limit", "too many requests", "daily request count exceeded",
    "request limit", "over capacity", "project id request rate exceeded",
)


class RotatingHTTPProvider(HTTPProvider):
    """
    HTTP provider that rotates between multiple RPC URLs when rate-limited
    or on connection errors. Attempts each URL in order and advances on
    failures. Thread-safe for simple usage.
    """

    def __init__(self, rpc_urls: List[str], request_kwargs: Optional[dict] = None):
        urls = list(dict.fromkeys(u.strip() for u in rpc_urls if u and u.strip()))
        if not urls:
            raise ValueError("rpc_urls must be a non-empty list")
        super().__init__(endpoint_uri=urls[0], request_kwargs=request_kwargs or {"timeout": 20})
        self._urls: List[str] = urls
        self._idx: int = 0
        self._lock = threading.Lock()

    @property
    def urls(self) -> List[str]:
        return list(self._urls)

    @property
    def current_url(self) -> str:
        with self._lock:
            return self._urls[self._idx]

    def _advance(self, reason: str) -> None:
        with self._lock:
            previous = self._urls[self._idx]
            self._idx = (self._idx + 1) % len(self._urls)
            self.endpoint_uri = self._urls[self._idx]
        if len(self._urls) > 1:
            logger.warning("RPC %s failed (%s); rotating to %s", previous, reason, self.endpoint_uri)

    def _should_rotate_on_error(self, error_obj) -> bool:
        if not isinstance(error_obj, dict):
            return False
        msg = str(error_obj.get("message", "")).lower()
        if any(tok in msg for tok in RATE_TOKENS):
            return True
        return error_obj.get("code") in (-32005, 429)

    def make_request(self, method, params):  # type: ignore[override]
        if method in NON_RETRYABLE_METHODS:
            return super().make_request(method, params)

        last_exc: Optional[BaseException] = None
        last_error_resp: Optional[dict] = None
        for _ in range(len(self._urls)):
            try:
                response = super().make_request(method, params)
            except Exception as e:  # connection errors, timeouts, HTTP 5xx/429
                last_exc = e
                self._advance(type(e).__name__)
                time.sleep(0.1)
                continue
            if isinstance(response, dict) and self._should_rotate_on_error(response.get("error")):
                last_error_resp = response
                self._advance("rate limited")
                time.sleep(0.1)
                continue
            return response

        if last_exc is not None:
            raise last_exc
        return last_error_resp
