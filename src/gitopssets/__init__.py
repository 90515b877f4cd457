"""
A controller that renders GitOpsSets, generators combined with resource templates, into Kubernetes resources.
"""

__version__ = "0.1.0"
