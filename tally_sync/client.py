"""
Tally HTTP client.

Tally's XML interface expects UTF-16LE request bodies and answers in
UTF-16LE. An empty answer is not an error: it means no company is open.
"""
from __future__ import annotations
import re
from typing import Optional
import requests
from loguru import logger

from .exceptions import ConfigurationError, ConnectivityError, TallyResponseError

ENCODING = "utf-16-le"

DEFAULT_HEADERS = {
    "Content-Type": "text/xml;charset=utf-16",
    "Accept": "text/xml",
    "User-Agent": "tally-sync/1.0",
}

_LINE_ERROR = re.compile(r"<LINEERROR>(.*?)</LINEERROR>", re.IGNORECASE | re.DOTALL)


class TallyClient:
    """
    HTTP client for one Tally endpoint.

    No retry happens here; a failed request aborts the current tenant and the
    next polling pass tries again.
    """

    def __init__(self, url: str, timeout: int = 300):
        if not url or not url.lower().startswith(("http://", "https://")):
            raise ConfigurationError(f"Tally server URL must start with http:// or https://, got {url!r}")
        self.base_url = url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)

    @property
    def is_secure(self) -> bool:
        return self.base_url.lower().startswith("https://")

    def post_xml(self, xml: str, timeout: Optional[int] = None) -> str:
        """
        Post XML to Tally and return the decoded response.

        Args:
            xml: XML request string
            timeout: Request timeout in seconds (uses client default if not specified)

        Returns:
            Response text, "" when no company is open

        Raises:
            ConnectivityError: If Tally cannot be reached
            TallyResponseError: If Tally rejects the request
        """
        timeout = timeout or self.timeout
        body = xml.encode(ENCODING)
        try:
            r = self.session.post(
                self.base_url,
                data=body,
                headers={"Content-Length": str(len(body))},
                timeout=timeout,
            )
            r.raise_for_status()
        except requests.ConnectionError as e:
            logger.error(f"Failed to connect to Tally at {self.base_url}: {e}")
            raise ConnectivityError(
                f"Unable to connect with Tally at {self.base_url}. "
                f"Ensure Tally is running and the XML port is enabled"
            ) from e
        except requests.Timeout as e:
            logger.error(f"Tally request timed out after {timeout}s")
            raise ConnectivityError(
                f"Tally at {self.base_url} did not answer within {timeout}s. "
                f"Ensure the XML port is enabled"
            ) from e
        except requests.HTTPError as e:
            raise TallyResponseError(f"Tally returned HTTP {e.response.status_code}") from e
        except requests.RequestException as e:
            logger.error(f"Tally request failed: {e}")
            raise ConnectivityError(f"Request to Tally at {self.base_url} failed: {e}") from e

        text = r.content.decode(ENCODING, errors="replace").lstrip("\ufeff")

        match = _LINE_ERROR.search(text)
        if match:
            raise TallyResponseError(f"Tally error: {_unescape(match.group(1).strip())}")

        return text

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _unescape(msg: str) -> str:
    msg = msg.replace("&apos;", "'").replace("&quot;", '"')
    msg = msg.replace("&lt;", "<").replace("&gt;", ">")
    return msg.replace("&amp;", "&")
