"""Polymarket Gamma (metadata) and CLOB (tokens, order book) clients."""
