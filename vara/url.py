"""Dial URLs such as ``varahf:///LA1B?bw=2300&p2p=true``."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit


@dataclass
class DialURL:
    """A parsed dial URL: scheme, target call sign, optional host and query parameters."""

    scheme: str
    target: str
    host: str = ""
    params: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def param(self, name: str) -> str:
        """Return the first value of query parameter ``name``, or "" if absent."""
        values = self.params.get(name)
        return values[0] if values else ""


def parse_url(url: str) -> DialURL:
    """Parse a dial URL; raises ValueError if the scheme or target is missing."""
    parts = urlsplit(url)
    if not parts.scheme:
        raise ValueError(f"missing scheme in URL {url!r}")
    path = parts.path
    target = path[1:] if path.startswith("/") else path
    if not target:
        raise ValueError(f"missing target in URL {url!r}")
    params = {
        key: tuple(values)
        for key, values in parse_qs(parts.query, keep_blank_values=True).items()
    }
    return DialURL(
        scheme=parts.scheme,
        target=target,
        host=parts.hostname or "",
        params=params,
    )