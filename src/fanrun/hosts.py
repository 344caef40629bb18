"""Host list reading.

Hosts arrive on standard input separated by any whitespace.
"""

from __future__ import annotations

import logging
from typing import TextIO

logger = logging.getLogger(__name__)


def is_local_host(host: str) -> bool:
    """Check if a host string refers to the local machine."""
    return host in ("localhost", "127.0.0.1", "")


def read_hosts(stream: TextIO) -> list[str]:
    """Read every host from *stream*.

    The whole stream is consumed in one pass. Hosts may be separated by
    spaces, tabs or newlines; input order is preserved and duplicates are
    kept.

    Args:
        stream: Text stream (usually stdin).

    Returns:
        List of host strings.
    """
    hosts = stream.read().split()
    logger.debug("Read %d hosts from input", len(hosts))
    return hosts
