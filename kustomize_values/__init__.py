"""
kustomize-values generates Helm values files from Kustomize bases and overlays.

Each service directory under an apps root contributes a base values file and
one values file per environment overlay, ready to be layered by a chart.
"""

__all__ = [
    "config",
    "generator",
    "manifest",
    "values",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
