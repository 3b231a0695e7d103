"""Middleman Escrow — escrow transaction coordinator for buyer/seller deals."""

__version__ = "0.1.0"
