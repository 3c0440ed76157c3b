"""Parley realtime delivery components."""
