"""
Upstream Response Container
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx


@dataclass
class ProviderResponse:
    """
    Provider Response Data Class

    Encapsulates response information from the upstream provider.
    """

    # HTTP status code
    status_code: int
    # Response headers
    headers: dict[str, str] = field(default_factory=dict)
    # Parsed JSON body, or the raw text when the body is not JSON
    body: Any = None
    # Raw response bytes
    content: bytes = b""
    # Open streaming response; only set for successful stream calls
    stream: Optional[httpx.Response] = None
    # Total time (ms)
    total_time_ms: Optional[int] = None
    # Transport error message
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        """Whether the response is successful"""
        return 200 <= self.status_code < 300 and self.error is None

    @property
    def content_type(self) -> Optional[str]:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return None
