class UpstreamError(RuntimeError):
    """The generation upstream failed (HTTP error, timeout, empty completion)."""


class UpstreamConfigError(RuntimeError):
    """The upstream for a tool is not configured (missing URL or API key)."""
