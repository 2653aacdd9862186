"""Best-effort extraction of a listening port from a line of process output.

Dev servers announce themselves in many formats; a handful of patterns covers
the common ones (Vite, Next.js, Flask, Express, Rails).  The first rule that
matches wins.
"""

import re

# Ordered by priority.
PORT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:localhost|127\.0\.0\.1|0\.0\.0\.0):(\d{4,5})", re.IGNORECASE),
    re.compile(r"port\s+(\d{4,5})", re.IGNORECASE),
    re.compile(r"running (?:on|at)\s+.*?:(\d{4,5})", re.IGNORECASE),
)


def detect_port(line: str) -> int | None:
    """Return the port announced by *line*, or ``None`` if no rule matches.

    Args:
        line: A single line of output without its newline.

    Returns:
        The port number captured by the first matching rule.
    """
    for pattern in PORT_PATTERNS:
        match = pattern.search(line)
        if match:
            return int(match.group(1))
    return None
