"""
SceneDeck - vault-backed asset store for image/video scene decks.

Keeps every imported cut inside a self-contained vault directory:
content-addressed import → asset index → path resolution and missing-asset
recovery, with a reversible command history and a debounced autosave
on top.
"""

__version__ = "0.1.0"
