class CapabilityDenied(Exception):
    """Raised when a service plugin reads a binding it did not declare."""

    def __init__(self, capability: str, plugin_id: str | None = None):
        self.capability = capability
        self.plugin_id = plugin_id
        owner = f" by plugin '{plugin_id}'" if plugin_id else ""
        super().__init__(f"Host binding '{capability}' not declared{owner}")
