"""Bookings app package.

Stores the bookings users list for exchange (stays, tickets, flights).
A booking is immutable once listed apart from its status, which moves to
``swapped`` when a swap it took part in completes or to ``removed`` when
its owner withdraws it.
"""
