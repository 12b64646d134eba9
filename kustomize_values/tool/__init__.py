"""Command line actions for kustomize-values."""
