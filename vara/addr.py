"""Network address of a VARA station."""

from __future__ import annotations

from dataclasses import dataclass

NETWORK = "vara"


@dataclass(frozen=True)
class Addr:
    """A station address, identified by its call sign."""

    call: str

    def network(self) -> str:
        """Name of the network the address belongs to."""
        return NETWORK

    def __str__(self) -> str:
        return self.call