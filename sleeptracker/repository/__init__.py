"""Repository layer: DB access helpers (SQLite).

Keep functions thin and focused, so services and the controller avoid SQL strings.
"""
from __future__ import annotations
