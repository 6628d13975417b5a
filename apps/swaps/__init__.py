"""Swaps app package.

Swap listings, proposals, auctions and targeting links between swaps.
"""
