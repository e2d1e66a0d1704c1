# app/services/ktag_client.py
import json
import time
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from requests import RequestException, Timeout
from requests.auth import HTTPBasicAuth

from app.core.config_env import Settings
from app.core.errors import ConfigurationError, UpstreamUnavailable

logger = logging.getLogger("ktag")

_CHUNK_SIZE = 1024


class KTagClient:
    """
    POSTs a device's keys to the K-Tag location API.

    Attempts are sequential, at most MAX_RETRIES in total. Each attempt has a
    deadline of UPSTREAM_TIMEOUT_SECONDS covering connect, headers and the whole
    body; missing it counts as a transport error. Transport errors and 5xx are
    retried after RETRY_DELAY_MS * (attempt + 1); a 4xx is final on the first attempt.
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.sleep = sleep
        self.monotonic = monotonic

    def _build_payload(self, accessory_id: str, hashed_adv_key: str, private_key: str) -> Dict[str, Any]:
        return {
            "accessoryId": accessory_id,
            "hashed_keys": [hashed_adv_key],
            "priv_keys": [private_key],
        }

    def _backoff(self, attempt: int) -> None:
        self.sleep(self.settings.RETRY_DELAY_MS * (attempt + 1) / 1000.0)

    def _read_body(self, response, deadline: float) -> bytes:
        # the socket timeout alone never fires on a server that keeps trickling bytes
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if self.monotonic() > deadline:
                    raise Timeout("K-Tag API response exceeded %ss" % self.settings.UPSTREAM_TIMEOUT_SECONDS)
                chunks.append(chunk)
        finally:
            response.close()
        return b"".join(chunks)

    def _attempt(self, payload: Dict[str, Any], auth: HTTPBasicAuth) -> Tuple[requests.Response, bytes]:
        timeout = self.settings.UPSTREAM_TIMEOUT_SECONDS
        deadline = self.monotonic() + timeout
        response = self.session.post(
            self.settings.KTAG_API_URL,
            json=payload,
            auth=auth,
            timeout=timeout,
            stream=True,
        )
        if self.monotonic() > deadline:
            response.close()
            raise Timeout("K-Tag API did not answer within %ss" % timeout)
        return response, self._read_body(response, deadline)

    def query(self, accessory_id: str, hashed_adv_key: str, private_key: str) -> Any:
        """Returns the decoded JSON body (None if it is not JSON); raises UpstreamUnavailable on failure."""
        if not self.settings.upstream_configured:
            logger.error("K-Tag API credentials not configured")
            raise ConfigurationError()

        retries = self.settings.MAX_RETRIES
        auth = HTTPBasicAuth(self.settings.KTAG_USERNAME, self.settings.KTAG_PASSWORD)
        payload = self._build_payload(accessory_id, hashed_adv_key, private_key)
        logger.info("Calling K-Tag API with accessoryId: %s", accessory_id)

        for attempt in range(retries):
            try:
                response, body = self._attempt(payload, auth)
            except RequestException as e:
                if attempt < retries - 1:
                    logger.warning("K-Tag API request failed, retrying... (%d/%d): %s", attempt + 1, retries, e)
                    self._backoff(attempt)
                    continue
                logger.error("K-Tag API request failed after %d attempts: %s", retries, e)
                raise UpstreamUnavailable()

            if response.ok:
                try:
                    return json.loads(body)
                except ValueError:
                    logger.warning("K-Tag API returned a non-JSON body")
                    return None

            text = body.decode("utf-8", errors="replace")
            # 4xx: the request itself is wrong, retrying will not help
            if 400 <= response.status_code < 500:
                logger.error("K-Tag API error: %s %s", response.status_code, text)
                raise UpstreamUnavailable(response.status_code)

            if attempt < retries - 1:
                logger.warning("K-Tag API error (%s), retrying... (%d/%d)", response.status_code, attempt + 1, retries)
                self._backoff(attempt)
                continue

            logger.error("K-Tag API error: %s %s", response.status_code, text)
            raise UpstreamUnavailable(response.status_code)

        raise UpstreamUnavailable()
