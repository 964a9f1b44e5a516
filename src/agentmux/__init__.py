"""agentmux: layered configuration and hook execution for agent sessions."""

__version__ = "0.3.0"
