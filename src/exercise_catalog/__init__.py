"""Catalogo offline di esercizi (MuscleWiki): crawl, normalizzazione, media, manifest."""

__version__ = "0.1.0"
