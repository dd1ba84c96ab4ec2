"""Dietitian revenue and quality rollups, independent of any UI.

Modules, bottom-up:
- layout / parsing: sheet ranges and cell normalization into pandas frames
- entities / targets / hierarchy: the SM > M > AM/FLAP tree with EMs alongside
- metrics_*: per-page payload builders returning plain dicts
- source / data: fetching ranges and assembling a request context
"""
