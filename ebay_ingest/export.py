"""
Export utilities for ingested listings and job history.
"""
from typing import Optional

import pandas as pd

from .database import Database


def export_clean_listings(db: Database, user_id: str, keyword: Optional[str] = None) -> pd.DataFrame:
    """Clean listings of a user, optionally for one keyword, newest first."""
    q = "SELECT * FROM sold_listings_clean WHERE user_id = ?"
    params = [user_id]
    if keyword:
        q += " AND search_keyword = ?"
        params.append(keyword)
    q += " ORDER BY id DESC"
    with db.connect() as conn:
        df = pd.read_sql_query(q, conn, params=params)
    if not df.empty:
        df["is_auction"] = df["is_auction"].astype(bool)
    return df


def export_jobs(db: Database, user_id: str) -> pd.DataFrame:
    q = "SELECT * FROM scrape_jobs WHERE user_id = ? ORDER BY created_at DESC"
    with db.connect() as conn:
        return pd.read_sql_query(q, conn, params=(user_id,))


def save_frame(df: pd.DataFrame, out_path: str) -> None:
    if out_path.lower().endswith(".xlsx"):
        df.to_excel(out_path, index=False)
    else:
        df.to_csv(out_path, index=False)
