"""trailguard: tamper-evident asynchronous audit trail.

Security-relevant events are redacted, signed, queued for non-blocking
delivery with retries, and periodically re-verified in bulk.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
