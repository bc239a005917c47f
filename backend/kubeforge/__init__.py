"""KubeForge - Kubernetes image vulnerability scan orchestrator."""

__version__ = "0.1.0"
