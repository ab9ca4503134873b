# spendcast/utils.py
import pandas as pd

MONTH_COL = "Month"
AMOUNT_COL = "Amount"
LABEL_FORMAT = "%B %Y"


def month_floor(dates: pd.Series) -> pd.Series:
    """Truncate datetimes to the first day of their month."""
    return pd.to_datetime(dates).dt.to_period("M").dt.to_timestamp()


def next_month_label(month) -> str:
    # DateOffset handles December -> January of the next year
    nxt = pd.Timestamp(month) + pd.DateOffset(months=1)
    return nxt.strftime(LABEL_FORMAT)


def missing_months(series: pd.DataFrame) -> pd.DatetimeIndex:
    if series is None or series.empty or MONTH_COL not in series.columns:
        return pd.DatetimeIndex([])
    months = pd.DatetimeIndex(month_floor(series[MONTH_COL]))
    full = pd.date_range(months.min(), months.max(), freq="MS")
    return full.difference(months)


def fill_missing_months(series: pd.DataFrame, value: float = 0.0) -> pd.DataFrame:
    """Return a copy with a row for every month between the first and last, gaps set to `value`."""
    if series is None or series.empty:
        return pd.DataFrame(columns=[MONTH_COL, AMOUNT_COL])
    s = series.copy()
    s[MONTH_COL] = month_floor(s[MONTH_COL])
    full = pd.date_range(s[MONTH_COL].min(), s[MONTH_COL].max(), freq="MS", name=MONTH_COL)
    out = s.set_index(MONTH_COL)[AMOUNT_COL].reindex(full, fill_value=value)
    return out.astype(float).reset_index()
