"""
Shared Kernel

Base classes and utilities shared by the booking, swap and notification
contexts: DDD building blocks, the error taxonomy, the unit of work and the
message bus.
"""
