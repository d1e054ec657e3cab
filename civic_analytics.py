# civic_analytics.py
# Counters and charts computed client-side over reports already fetched for
# the admin dashboard.

import pandas as pd
import plotly.express as px

from civic_backend import CATEGORIES, STATUSES

REPORT_COLUMNS = [
    "id", "title", "description", "category", "status", "priority", "address",
    "latitude", "longitude", "image_url", "author_id", "created_at",
]


def reports_frame(rows) -> pd.DataFrame:
    """DataFrame of reports with every expected column present."""
    df = pd.DataFrame(list(rows or []))
    for c in REPORT_COLUMNS:
        if c not in df.columns:
            df[c] = None
    return df


def status_counts(rows) -> dict:
    df = reports_frame(rows)
    counts = df["status"].value_counts()
    result = {"total": len(df)}
    for status in STATUSES:
        result[status] = int(counts.get(status, 0))
    return result


def category_counts(rows) -> dict:
    df = reports_frame(rows)
    counts = df["category"].value_counts()
    return {category: int(counts.get(category, 0)) for category in CATEGORIES}


def daily_counts(rows) -> pd.DataFrame:
    # columns: date, reports
    df = reports_frame(rows)
    dates = pd.to_datetime(df["created_at"], errors="coerce", utc=True).dt.date
    trend = dates.dropna().value_counts().sort_index()
    return pd.DataFrame({"date": list(trend.index), "reports": [int(v) for v in trend.values]})


def mappable_reports(rows) -> pd.DataFrame:
    """Reports with usable coordinates, for st.map."""
    df = reports_frame(rows)
    df["latitude"] = pd.to_numeric(df["latitude"], errors="coerce")
    df["longitude"] = pd.to_numeric(df["longitude"], errors="coerce")
    df = df.dropna(subset=["latitude", "longitude"])
    df = df[df["latitude"].between(-90, 90) & df["longitude"].between(-180, 180)]
    return df.reset_index(drop=True)


# ---------------- CHARTS ----------------

def status_figure(rows):
    counts = status_counts(rows)
    data = pd.DataFrame({"status": STATUSES, "reports": [counts[s] for s in STATUSES]})
    return px.pie(data, names="status", values="reports", title="Issue status distribution")


def category_figure(rows):
    counts = category_counts(rows)
    data = pd.DataFrame({"category": list(counts), "reports": list(counts.values())})
    return px.bar(data, x="category", y="reports", title="Reports by category")


def trend_figure(rows):
    return px.line(daily_counts(rows), x="date", y="reports", title="Reports over time")
