import time
from typing import Callable, Dict, Optional

import httpx

from katlang.kat_datatypes import _dbg


def http_get_text(url: str, config: Optional[Dict] = None) -> str:
    """
    Fetches `url` and returns the response body as text.

    config keys: `timeout` (seconds), `retries`, `backoff` (seconds, doubled
    per attempt) and `headers`. Non-2xx responses raise RuntimeError.
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 5.0))
    retries = int(cfg.pop('retries', 2))
    backoff = float(cfg.pop('backoff', 0.2))
    headers = dict(cfg.pop('headers', {}))

    with httpx.Client(timeout=timeout, follow_redirects=True) as client:
        last_exc = None
        for attempt in range(retries + 1):
            try:
                resp = client.get(url, headers=headers)
                if 200 <= resp.status_code < 300:
                    return resp.text
                preview = (resp.text or "")[:200]
                raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
            except Exception as e:
                last_exc = e
                if attempt < retries:
                    _dbg("http retry", attempt + 1, url, e)
                    time.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc


def make_http_loader(config: Optional[Dict] = None) -> Callable[[str], str]:
    """A loader for `load`/`join` bound to one HTTP configuration."""
    def loader(address: str) -> str:
        return http_get_text(address, config)
    return loader
