"""gemstock - diamond stock ledger for the jewelry admin backend."""

__version__ = "0.1.0"
