"""Video status records.

Records are created by ingestion with status ``uploaded`` and are only
mutated by the transcode pipeline afterwards.
"""
