"""Client for the VARA HF/FM modem's TCP command and data ports."""

__version__ = "0.1.0"