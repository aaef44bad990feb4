"""Test package for the attention test engine.

Timing tests drive the scheduler with a fake nanosecond clock and a manually
pumped timer loop, so no test sleeps. The pygame smoke test uses SDL's dummy
video driver. Run ``pytest`` from the project root.
"""
