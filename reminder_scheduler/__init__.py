"""Adaptive weekly reminder scheduling for glucose measurements."""
