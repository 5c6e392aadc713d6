"""
Panacea ingress controller.

A Kubernetes reverse-proxy gateway that routes traffic according to
Ingress resources of a configured ingress class.
"""

__version__ = "0.1.0"
