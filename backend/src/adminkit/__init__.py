"""adminkit: data explorer query engine and plugin runtime for the admin platform."""

__version__ = "0.1.0"
