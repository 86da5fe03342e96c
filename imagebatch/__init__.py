"""
Batch image compression service.

Accepts CSV batch descriptions, downloads the referenced images, recompresses
them in a worker pool and reports the outcome through a status record and a
completion callback.
"""
