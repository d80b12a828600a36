from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_NAMESPACE_PREFIX = "com.google.appinventor.components.runtime"

# Scheme files are "#|\n$JSON\n" + <json> + "\n|#".
SCHEME_HEADER_LENGTH = 9
SCHEME_FOOTER_LENGTH = 3


@dataclass
class IngestionConfig:
    # None means the catalog bundled with the package is used.
    descriptor_url: Optional[str] = None
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX
    scheme_header_length: int = SCHEME_HEADER_LENGTH
    scheme_footer_length: int = SCHEME_FOOTER_LENGTH
    resolver_workers: int = 4
    resolver_mode: str = "thread"
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "IngestionConfig":
        return cls(
            descriptor_url=os.getenv("UNCHIVE_DESCRIPTOR_URL") or None,
            namespace_prefix=os.getenv("UNCHIVE_NAMESPACE_PREFIX", DEFAULT_NAMESPACE_PREFIX),
            resolver_workers=int(os.getenv("UNCHIVE_RESOLVER_WORKERS", "4")),
            resolver_mode=os.getenv("UNCHIVE_RESOLVER_MODE", "thread"),
            http_timeout=float(os.getenv("UNCHIVE_HTTP_TIMEOUT", "30")),
        )
