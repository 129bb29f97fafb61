"""HLS transcoding pipeline and signed playback service."""
