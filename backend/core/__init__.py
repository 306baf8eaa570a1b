"""Core logic for indicators, strategy state machines and models.

This package contains pure logic with no I/O dependencies (no Redis or
network access). The runtime adapters in app/ feed it candles and persist
its state.
"""
