"""
PortSurgeon
Port ownership discovery and safety-gated process termination.
"""
__version__ = "1.0.0"
