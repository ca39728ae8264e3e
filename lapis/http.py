"""HTTP primitive functions used to request the remote JSON metadata.
"""

from urllib.error import HTTPError
from http.client import HTTPResponse
from json import JSONDecodeError
import urllib.request
import urllib.parse
import logging
import json
import ssl

import certifi

from .error import ParseError
from . import LAUNCHER_NAME, LAUNCHER_VERSION

from typing import Optional, Any, cast


__all__ = ["HttpResponse", "HttpError", "http_request", "http_json", "ssl_context"]

logger = logging.getLogger(__name__)


def ssl_context() -> ssl.SSLContext:
    """Create the SSL context used for all HTTPS connections, with certifi's CA bundle.
    """
    return ssl.create_default_context(cafile=certifi.where())


class HttpResponse:
    """An HTTP response containing the status, data and received headers.
    """

    def __init__(self, res: Optional[HTTPResponse], url: str = "") -> None:

        self.url = url
        self.status = 0 if res is None else res.status
        self.data = b"null" if res is None else res.read()
        self.headers = {}

        if res is not None:
            for header_name, header_value in res.getheaders():
                self.headers[header_name] = header_value

    def json(self) -> Any:
        """Parse the data as JSON.

        :raises ParseError: If the data is not valid JSON.
        """
        try:
            return json.loads(self.data)
        except (JSONDecodeError, UnicodeDecodeError) as error:
            raise ParseError(f"invalid json from {self.url}: {error}") from error

    def text(self) -> str:
        """Parse the data as UTF-8 text.
        """
        return self.data.decode()

    def __repr__(self) -> str:
        return f"<HttpResponse {self.status}>"


class HttpError(Exception):
    """An HTTP error, raised when the status code of the response is not 2xx.

    If any network error happens and it's impossible to receive a response from the
    server, an instance of `HttpResponse` with status equal to 0 is used (also has no
    headers and `None` data). The original reason for this error is given in the `reason`
    attribute in any case.
    """

    def __init__(self, res: HttpResponse, method: str, url: str, reason: Exception) -> None:
        super().__init__(method, url, res.status)
        self.res = res
        self.method = method
        self.url = url
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.method} {self.url} failed with status {self.res.status}: {self.reason}"

    def __repr__(self) -> str:
        return f"<HttpError {self.res}, origin: {self.method} {self.url}, reason: {self.reason}>"


def http_request(method: str, url: str, *,
    data: Optional[bytes] = None,
    headers: Optional[dict] = None,
    accept: Optional[str] = None,
    content_type: Optional[str] = None,
    timeout: Optional[float] = 30.0
) -> HttpResponse:
    """Make a synchronous HTTP request.

    :return: The response returned should've a status of 2xx.
    :raises HttpError: An error wrapping a response that is not of status 2xx.
    """

    if headers is None:
        headers = {}
    if accept is not None:
        headers["Accept"] = accept
    if content_type is not None:
        headers["Content-Type"] = content_type
    if "User-Agent" not in headers:
        headers["User-Agent"] = f"{LAUNCHER_NAME}/{LAUNCHER_VERSION}"

    logger.debug("%s %s", method, url)

    try:
        req = urllib.request.Request(url, data, headers, method=method)
        ctx = ssl_context() if urllib.parse.urlparse(url).scheme == "https" else None
        res: HTTPResponse = urllib.request.urlopen(req, context=ctx, timeout=timeout)
        return HttpResponse(res, url)
    except HTTPError as error:
        raise HttpError(HttpResponse(cast(HTTPResponse, error), url), method, url, error)
    except OSError as error:
        # URLError and socket timeouts, no response has been received.
        raise HttpError(HttpResponse(None, url), method, url, error)


def http_json(url: str, *, timeout: Optional[float] = 30.0) -> Any:
    """Shortcut for a GET request of a JSON document.

    :raises HttpError: If the response is not of status 2xx.
    :raises ParseError: If the response is not valid JSON.
    """
    return http_request("GET", url, accept="application/json", timeout=timeout).json()
