"""pgpclient: layered OpenPGP message composition and decoding."""

__version__ = "1.0.0"
