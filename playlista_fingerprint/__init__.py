"""
Playlista fingerprinting

Acoustic feature extraction over a music library, persisted per file for
the similarity and mix layers.
"""

__version__ = "2.0.0"
