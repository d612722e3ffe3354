"""licensehub: machine-bound software license issuance and verification."""

__version__ = "0.1.0"
