# spendcast/components/data_ingestion.py
import logging
from pathlib import Path
from typing import Callable, Optional

import numpy as np
import pandas as pd

from spendcast.exceptions import DataLoadError, ParseError, SchemaError
from spendcast.utils import AMOUNT_COL, MONTH_COL, month_floor

logger = logging.getLogger(__name__)

# Month/day/year layouts, tried in order. Commas are stripped before matching
# so "July 4, 2024" and "July 4 2024" both hit the month-name formats.
MDY_FORMATS = (
    "%m/%d/%Y", "%m-%d-%Y", "%m.%d.%Y",
    "%m/%d/%y", "%m-%d-%y", "%m.%d.%y",
    "%B %d %Y", "%b %d %Y",
)

DateParser = Callable[[pd.Series], pd.Series]


def _describe_rows(mask: pd.Series, values: pd.Series, limit: int = 5) -> str:
    bad = values[mask].head(limit)
    shown = ", ".join(f"data row {i + 1}: {v!r}" for i, v in bad.items())
    more = int(mask.sum()) - len(bad)
    return shown + (f" (+{more} more)" if more > 0 else "")


def parse_mdy(values: pd.Series) -> pd.Series:
    """
    Parse month/day/year strings into datetimes.

    Every value must match one of MDY_FORMATS; blanks and anything else
    raise ParseError instead of becoming NaT.
    """
    raw = values.map(lambda v: "" if pd.isna(v) else str(v).strip())
    cleaned = raw.str.replace(",", " ", regex=False).str.replace(r"\s+", " ", regex=True)

    parsed = pd.Series(pd.NaT, index=values.index, dtype="datetime64[ns]")
    for fmt in MDY_FORMATS:
        todo = parsed.isna()
        if not todo.any():
            break
        parsed[todo] = pd.to_datetime(cleaned[todo], format=fmt, errors="coerce")

    bad = parsed.isna()
    if bad.any():
        raise ParseError(f"Unparseable month/day/year date(s): {_describe_rows(bad, values)}")
    return parsed


def parse_amounts(values: pd.Series) -> pd.Series:
    raw = values.map(lambda v: v.strip() if isinstance(v, str) else v)
    amounts = pd.to_numeric(raw, errors="coerce").astype(float)
    bad = amounts.isna()
    if bad.any():
        raise ParseError(f"Non-numeric amount(s): {_describe_rows(bad, values)}")
    # "inf" and overflowing literals like 1e400 parse as infinity
    bad = ~np.isfinite(amounts)
    if bad.any():
        raise ParseError(f"Non-finite amount(s): {_describe_rows(bad, values)}")
    return amounts


class IngestionConfig:
    date_column = "Date"
    amount_column = "Amount"
    encoding = "utf-8"

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(IngestionConfig, key):
                raise TypeError(f"Unknown ingestion setting: {key}")
            setattr(self, key, value)


class DataIngestion:
    def __init__(self, ingestion_config: Optional[IngestionConfig] = None, date_parser: Optional[DateParser] = None):
        self.ingestion_config = ingestion_config or IngestionConfig()
        self.date_parser = date_parser or parse_mdy

    def _read(self, source, has_header: bool, delimiter: str) -> pd.DataFrame:
        header = 0 if has_header else None
        try:
            if hasattr(source, "read"):
                return pd.read_csv(source, sep=delimiter, header=header, dtype=str, skipinitialspace=True)
            path = Path(source)
            with open(path, "r", encoding=self.ingestion_config.encoding, newline="") as fh:
                return pd.read_csv(fh, sep=delimiter, header=header, dtype=str, skipinitialspace=True)
        except OSError as e:
            logger.error(f"Cannot read {source}: {e}")
            raise DataLoadError(f"Cannot read {source}: {e}") from e
        except pd.errors.EmptyDataError as e:
            logger.error(f"{source} is empty")
            raise DataLoadError(f"{source} is empty") from e
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            logger.error(f"{source} is not valid delimited text: {e}")
            raise DataLoadError(f"{source} is not valid delimited text: {e}") from e

    def _select_columns(self, df: pd.DataFrame, has_header: bool) -> pd.DataFrame:
        date_col = self.ingestion_config.date_column
        amount_col = self.ingestion_config.amount_column

        if not has_header:
            # Header-less files are positional: first column Date, second Amount
            if df.shape[1] < 2:
                raise SchemaError(f"Expected at least 2 columns, found {df.shape[1]}")
            return df.iloc[:, :2].set_axis([date_col, amount_col], axis=1)

        df.columns = [str(c).strip() for c in df.columns]
        missing = [c for c in (date_col, amount_col) if c not in df.columns]
        if missing:
            raise SchemaError(f"Missing required column(s): {', '.join(missing)}")
        return df[[date_col, amount_col]]

    def initiate_data_ingestion(self, source, has_header: bool = True, delimiter: str = ",") -> pd.DataFrame:
        logger.info("Entered the data ingestion method")
        df = self._read(source, has_header, delimiter)
        logger.info(f"Read {len(df)} rows from {source}")

        try:
            df = self._select_columns(df, has_header)
            dates = self.date_parser(df[self.ingestion_config.date_column])
            if dates.isna().any():
                raise ParseError(
                    f"Unparseable date(s): {_describe_rows(dates.isna(), df[self.ingestion_config.date_column])}"
                )
            amounts = parse_amounts(df[self.ingestion_config.amount_column])
        except (SchemaError, ParseError) as e:
            logger.error(f"Error in data ingestion: {e}")
            raise
        except (ValueError, TypeError) as e:
            # raised by an injected date parser
            logger.error(f"Error in data ingestion: {e}")
            raise ParseError(str(e)) from e

        frame = pd.DataFrame({MONTH_COL: month_floor(dates), AMOUNT_COL: amounts})
        series = (
            frame.groupby(MONTH_COL, as_index=False, sort=True)[AMOUNT_COL].sum()
            .sort_values(MONTH_COL)
            .reset_index(drop=True)
        )
        series[AMOUNT_COL] = series[AMOUNT_COL].astype(float)

        logger.info(f"Aggregated {len(frame)} transactions into {len(series)} months")
        return series


def aggregate(
    source,
    has_header: bool = True,
    delimiter: str = ",",
    config: Optional[IngestionConfig] = None,
    date_parser: Optional[DateParser] = None,
) -> pd.DataFrame:
    """
    Load a delimited file of dated transactions and sum Amount per calendar month.

    Returns a DataFrame with columns Month (first of month) and Amount, one row
    per month present in the file, sorted ascending.
    """
    return DataIngestion(config, date_parser).initiate_data_ingestion(source, has_header, delimiter)
