"""OpenPGP keys and messages with local or custodian-held private keys."""
import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
