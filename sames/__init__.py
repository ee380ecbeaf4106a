"""Off-chain trade ledger, price history and wallet-signature auth for SAMES tokens."""

__version__ = "0.1.0"
