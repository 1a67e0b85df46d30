"""Stadi di ingestione: fetch, estrazione, normalizzazione, media, encoder, stato."""
