"""Signed playback manifest resolution."""
