"""
Resumable Kubernetes cluster provisioning pipeline.
"""
__version__ = "0.1.0"
