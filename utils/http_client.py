"""HTTP client with retries used by datasources and webhook actions."""
import time
import logging
import requests

logger = logging.getLogger("autoscale.http")


class APIError(Exception):
    """API request error with status code and response body."""
    def __init__(self, message, status_code=None, response_body=None, url=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.url = url


class HTTPClient:
    """HTTP client with retry logic for transient failures."""

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(self, timeout=30, max_retries=2, backoff=1.0):
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "autoscale/1.0"})

    def get_json(self, url, headers=None):
        return self._decode(self.request("GET", url, headers=headers))

    def request_json(self, method, url, body=None, headers=None):
        return self._decode(self.request(method, url, body=body, headers=headers))

    @staticmethod
    def _decode(resp):
        try:
            return resp.json()
        except ValueError:
            raise APIError(
                f"Invalid JSON from {resp.url}",
                status_code=resp.status_code,
                response_body=resp.text,
                url=resp.url,
            )

    def request(self, method, url, body=None, headers=None):
        """Perform a request, returning the response for any 2xx status."""
        method = (method or "GET").upper()
        data = body.encode() if isinstance(body, str) and body else None

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                start = time.time()
                resp = self.session.request(
                    method, url, data=data, headers=headers or None, timeout=self.timeout
                )
                latency = int((time.time() - start) * 1000)
                logger.debug(f"{method} {url} → {resp.status_code} ({latency}ms)")

                if 200 <= resp.status_code < 300:
                    return resp

                if resp.status_code in self.RETRYABLE_STATUS and attempt < self.max_retries:
                    wait = min(self.backoff * 2 ** attempt, 30)
                    logger.warning(f"Retryable {resp.status_code} from {url}, waiting {wait:.1f}s "
                                   f"(attempt {attempt + 1})")
                    last_error = APIError(f"HTTP {resp.status_code} from {url}",
                                          status_code=resp.status_code, url=url)
                    time.sleep(wait)
                    continue

                raise APIError(
                    f"HTTP {resp.status_code} from {url}",
                    status_code=resp.status_code,
                    response_body=resp.text,
                    url=url,
                )

            except requests.exceptions.RequestException as e:
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")
                last_error = APIError(str(e), url=url)
                if attempt < self.max_retries:
                    time.sleep(min(self.backoff * 2 ** attempt, 30))

        raise last_error or APIError(f"Max retries exceeded for {url}", url=url)
