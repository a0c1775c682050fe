"""
Plugin runtime: definitions, host, loader and scheduler.

Service plugins declare scheduled tasks and HTTP endpoints; client plugins
render into mount points. See ``base`` for the contract and ``runtime`` for
the host that drives it.
"""
