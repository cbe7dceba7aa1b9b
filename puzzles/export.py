"""
Result Export

Writes a search session back out in the corpus column layout, so an
exported practice set can itself be used as a corpus.
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from puzzles.decoder import LICHESS_SCHEMA, ColumnSchema, encode
from puzzles.session import SearchSession


def session_frame(session: SearchSession, schema: ColumnSchema = LICHESS_SCHEMA) -> pd.DataFrame:
    """One row per puzzle, in navigation order, with the schema's columns."""
    rows = [encode(puzzle, schema) for puzzle in session.ordered()]
    return pd.DataFrame(rows, columns=list(schema.columns), dtype=str)


def export_session_csv(session: SearchSession, path, schema: ColumnSchema = LICHESS_SCHEMA) -> Path:
    """Write the session as a corpus file with a header line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = session_frame(session, schema)
    df.to_csv(path, index=False)
    return path
