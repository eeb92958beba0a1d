class ConfigError(Exception):
    """Configuration is missing, unreadable or has the wrong shape."""


class ProxyError(Exception):
    """
    Outbound call to an origin failed before a response was received.

    Carries the target URL so the 502 body can say where forwarding failed.
    """
    def __init__(self, target_url: str, reason: str):
        super().__init__(f"{target_url}: {reason}")
        self.target_url = target_url
        self.reason = reason
