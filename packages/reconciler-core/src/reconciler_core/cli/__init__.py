"""Command line interface of the reconciler."""
