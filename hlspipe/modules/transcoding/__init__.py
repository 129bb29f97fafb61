"""Transcoding module for HLS rendition sets.

Consumes transcode jobs, encodes one source into the fixed rendition
ladder, uploads the segments and publishes signed master/variant playlists.
"""
