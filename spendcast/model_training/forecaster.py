# spendcast/model_training/forecaster.py
"""
One-step-ahead forecasting of a monthly series with automatic ARIMA.

The order search itself lives in pmdarima; this module validates the series,
hands the amounts to a ModelFitter and turns its output into a ForecastResult:

    series = aggregate("transactions.csv")
    result = forecast_next_month(series)
    result.next_month          # "July 2024"
    result.forecasted_value    # 1234.56
    result.forecast_detail     # intervals, order, residual diagnostics
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
import pmdarima as pm
from scipy.stats import norm
from sklearn.metrics import (
    mean_absolute_error,
    mean_absolute_percentage_error,
    mean_squared_error,
)

from spendcast.exceptions import ConfigError, InputError, ModelError
from spendcast.utils import AMOUNT_COL, MONTH_COL, missing_months, month_floor, next_month_label

logger = logging.getLogger(__name__)

HORIZON = 1


# Below this many months the stepwise search breaks down inside
# statsmodels/pmdarima, so a mean-only model is fitted directly
MIN_SEARCH_LENGTH = 6

CRITERIA = ("aic", "aicc", "bic", "hqic")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


class ForecastConfig:
    # aicc matches auto.arima's default selection criterion
    information_criterion = "aicc"
    max_p = 5
    max_q = 5
    max_d = 2
    seasonal = False
    stepwise = True
    interval_levels: Tuple[int, ...] = (80, 95)

    def __init__(self, **overrides):
        self.information_criterion = os.getenv("SPENDCAST_ARIMA_IC") or ForecastConfig.information_criterion
        self.max_p = _env_int("SPENDCAST_ARIMA_MAX_P", ForecastConfig.max_p)
        self.max_q = _env_int("SPENDCAST_ARIMA_MAX_Q", ForecastConfig.max_q)
        for key, value in overrides.items():
            if not hasattr(ForecastConfig, key):
                raise TypeError(f"Unknown forecast setting: {key}")
            setattr(self, key, value)
        self._validate()

    def _validate(self):
        if self.information_criterion not in CRITERIA:
            raise ConfigError(
                f"information_criterion must be one of {', '.join(CRITERIA)}, got {self.information_criterion!r}"
            )
        for key in ("max_p", "max_q", "max_d"):
            value = getattr(self, key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{key} must be a non-negative integer, got {value!r}")
        if not self.interval_levels or not all(0 < lv < 100 for lv in self.interval_levels):
            raise ConfigError(f"interval_levels must be percentages in (0, 100), got {self.interval_levels!r}")


@dataclass
class ForecastDetail:
    mean: np.ndarray
    lower: Dict[int, np.ndarray]
    upper: Dict[int, np.ndarray]
    order: Tuple[int, int, int]
    seasonal_order: Tuple[int, int, int, int] = (0, 0, 0, 0)
    with_intercept: bool = True
    aic: Optional[float] = None
    aicc: Optional[float] = None
    bic: Optional[float] = None
    fitted: np.ndarray = field(default_factory=lambda: np.array([]))
    residuals: np.ndarray = field(default_factory=lambda: np.array([]))
    accuracy: Dict[str, float] = field(default_factory=dict)
    model: Any = None

    @property
    def method(self) -> str:
        p, d, q = self.order
        label = f"ARIMA({p},{d},{q})"
        if any(self.seasonal_order[:3]):
            P, D, Q, m = self.seasonal_order
            label += f"({P},{D},{Q})[{m}]"
        if self.with_intercept and d == 0:
            label += " with non-zero mean"
        return label

    def summary_frame(self) -> pd.DataFrame:
        """Point forecast and interval bounds, one row per step ahead."""
        out = pd.DataFrame({"mean": self.mean})
        for level in sorted(self.lower):
            out[f"lo_{level}"] = self.lower[level]
            out[f"hi_{level}"] = self.upper[level]
        out.index = pd.RangeIndex(1, len(out) + 1, name="step")
        return out


@dataclass
class ForecastResult:
    next_month: str
    forecasted_value: float
    forecast_detail: ForecastDetail

    def to_dict(self) -> Dict[str, Any]:
        detail = self.forecast_detail
        return {
            "next_month": self.next_month,
            "forecasted_value": self.forecasted_value,
            "method": detail.method,
            "intervals": {
                level: [float(detail.lower[level][0]), float(detail.upper[level][0])]
                for level in sorted(detail.lower)
            },
            "accuracy": dict(detail.accuracy),
        }


def accuracy_measures(actual: np.ndarray, fitted: np.ndarray) -> Dict[str, float]:
    """In-sample ME, RMSE, MAE, MPE and MAPE (percentages skipped when any actual is zero)."""
    actual = np.asarray(actual, dtype=float)
    fitted = np.asarray(fitted, dtype=float)
    if actual.size == 0:
        return {}
    err = actual - fitted
    out = {
        "ME": float(np.mean(err)),
        "RMSE": float(np.sqrt(mean_squared_error(actual, fitted))),
        "MAE": float(mean_absolute_error(actual, fitted)),
    }
    if np.all(actual != 0):
        out["MPE"] = float(np.mean(err / actual) * 100)
        out["MAPE"] = float(mean_absolute_percentage_error(actual, fitted) * 100)
    return out


class ModelFitter:
    """Fits a model to a 1-d array and forecasts `horizon` steps ahead."""

    def fit_and_forecast(self, values: np.ndarray, horizon: int) -> Tuple[np.ndarray, ForecastDetail]:
        raise NotImplementedError


class AutoArimaFitter(ModelFitter):
    def __init__(self, config: Optional[ForecastConfig] = None):
        self.config = config or ForecastConfig()

    def _mean_fit(self, values: np.ndarray, horizon: int) -> Tuple[np.ndarray, ForecastDetail]:
        """ARIMA(0,0,0) with non-zero mean, estimated by maximum likelihood."""
        n = values.size
        level = float(values.mean())
        resid = values - level
        sigma2 = float(np.mean(resid ** 2))
        sigma = np.sqrt(sigma2)

        mean = np.full(horizon, level)
        lower, upper = {}, {}
        for lv in self.config.interval_levels:
            half = norm.ppf(0.5 + lv / 200) * sigma
            lower[lv] = mean - half
            upper[lv] = mean + half

        aic = aicc = bic = None
        if sigma2 > 0:
            # two parameters: mean and variance
            loglik = -0.5 * n * (np.log(2 * np.pi * sigma2) + 1)
            aic = float(-2 * loglik + 4)
            bic = float(-2 * loglik + 2 * np.log(n))
            if n - 3 > 0:
                aicc = aic + 12 / (n - 3)

        detail = ForecastDetail(
            mean=mean,
            lower=lower,
            upper=upper,
            order=(0, 0, 0),
            aic=aic,
            aicc=aicc,
            bic=bic,
            fitted=np.full(n, level),
            residuals=resid,
            accuracy=accuracy_measures(values, np.full(n, level)),
        )
        return mean, detail

    def _search_bounds(self, n: int) -> Tuple[int, int, str]:
        cfg = self.config
        # at most one AR/MA term per three observations
        max_p = min(cfg.max_p, n // 3)
        max_q = min(cfg.max_q, n // 3)
        criterion = cfg.information_criterion
        # AICc divides by n - k - 1; use AIC while the largest candidate would zero it
        if criterion == "aicc" and n - cfg.max_d - (max_p + max_q + 2) - 1 <= 0:
            criterion = "aic"
        return max_p, max_q, criterion

    def _search(self, values: np.ndarray):
        cfg = self.config
        max_p, max_q, criterion = self._search_bounds(values.size)
        return pm.auto_arima(
            values,
            start_p=0, start_q=0,
            max_p=max_p, max_q=max_q, max_d=cfg.max_d,
            seasonal=cfg.seasonal,
            stepwise=cfg.stepwise,
            information_criterion=criterion,
            error_action="ignore",
            suppress_warnings=True,
        )

    def fit_and_forecast(self, values: np.ndarray, horizon: int) -> Tuple[np.ndarray, ForecastDetail]:
        values = np.asarray(values, dtype=float)
        if np.ptp(values) == 0:
            logger.info("Series is constant; using a mean-only model")
            return self._mean_fit(values, horizon)
        if values.size < MIN_SEARCH_LENGTH:
            logger.info(f"Only {values.size} months; using a mean-only model")
            return self._mean_fit(values, horizon)

        try:
            model = self._search(values)
            mean = model.predict(n_periods=horizon)
            lower, upper = {}, {}
            for level in self.config.interval_levels:
                _, ci = model.predict(n_periods=horizon, return_conf_int=True, alpha=1 - level / 100)
                lower[level] = np.asarray(ci[:, 0], dtype=float)
                upper[level] = np.asarray(ci[:, 1], dtype=float)
            fitted = np.asarray(model.predict_in_sample(), dtype=float)
            residuals = np.asarray(model.resid(), dtype=float)
        except Exception as e:
            # degenerate candidates raise more than ValueError inside statsmodels
            raise ModelError(f"Automatic ARIMA fit failed: {type(e).__name__}: {e}") from e

        detail = ForecastDetail(
            mean=np.asarray(mean, dtype=float),
            lower=lower,
            upper=upper,
            order=tuple(model.order),
            seasonal_order=tuple(model.seasonal_order or (0, 0, 0, 0)),
            with_intercept=bool(model.with_intercept),
            aic=_criterion(model, "aic"),
            aicc=_criterion(model, "aicc"),
            bic=_criterion(model, "bic"),
            fitted=fitted,
            residuals=residuals,
            accuracy=accuracy_measures(values, fitted),
            model=model,
        )
        return detail.mean, detail


def _criterion(model, name: str) -> Optional[float]:
    try:
        value = float(getattr(model, name)())
    except (AttributeError, ValueError, TypeError, ZeroDivisionError):
        return None
    return value if np.isfinite(value) else None


def _prepare_series(series: pd.DataFrame) -> pd.DataFrame:
    if series is None or not isinstance(series, pd.DataFrame):
        raise InputError("Monthly series must be a DataFrame with Month and Amount columns")
    if series.empty:
        raise InputError("Cannot fit a model on an empty series")

    month_col = MONTH_COL if MONTH_COL in series.columns else "Date"
    missing = [c for c in (month_col, AMOUNT_COL) if c not in series.columns]
    if missing:
        raise InputError(f"Monthly series is missing column(s): {', '.join(missing)}")

    try:
        months = month_floor(series[month_col])
        amounts = pd.to_numeric(series[AMOUNT_COL]).astype(float)
    except (ValueError, TypeError) as e:
        raise InputError(f"Monthly series has invalid values: {e}") from e

    if months.isna().any():
        raise InputError("Monthly series has missing months")
    if not np.isfinite(amounts.to_numpy()).all():
        raise InputError("Monthly series has missing or infinite amounts")
    if months.duplicated().any():
        dupes = sorted({m.strftime("%Y-%m") for m in months[months.duplicated()]})
        raise InputError(f"Monthly series has duplicate months: {', '.join(dupes)}")

    out = pd.DataFrame({MONTH_COL: months.to_numpy(), AMOUNT_COL: amounts.to_numpy()})
    return out.sort_values(MONTH_COL).reset_index(drop=True)


class MonthlyForecaster:
    def __init__(self, fitter: Optional[ModelFitter] = None, config: Optional[ForecastConfig] = None):
        self.fitter = fitter or AutoArimaFitter(config)

    def forecast(self, series: pd.DataFrame) -> ForecastResult:
        logger.info("Entered the forecasting method")
        prepared = _prepare_series(series)

        gaps = missing_months(prepared)
        if len(gaps):
            logger.warning(
                f"Series skips {len(gaps)} month(s) ({', '.join(m.strftime('%Y-%m') for m in gaps)}); "
                "forecasting over observed months only"
            )

        try:
            point, detail = self.fitter.fit_and_forecast(prepared[AMOUNT_COL].to_numpy(), HORIZON)
        except ModelError as e:
            logger.error(f"Error in forecasting: {e}")
            raise

        value = float(np.asarray(point, dtype=float)[0])
        if not np.isfinite(value):
            logger.error(f"Model produced a non-finite forecast: {value}")
            raise ModelError(f"Model produced a non-finite forecast: {value}")

        last_month = prepared[MONTH_COL].iloc[-1]
        result = ForecastResult(
            next_month=next_month_label(last_month),
            # built-in round: half-to-even on the float's binary value
            forecasted_value=round(value, 2),
            forecast_detail=detail,
        )
        logger.info(
            f"Forecast for {result.next_month}: {result.forecasted_value} "
            f"({getattr(detail, 'method', type(detail).__name__)}, {len(prepared)} months)"
        )
        return result


def forecast_next_month(
    series: pd.DataFrame,
    fitter: Optional[ModelFitter] = None,
    config: Optional[ForecastConfig] = None,
) -> ForecastResult:
    """Forecast the month after the last one in `series` with automatic ARIMA."""
    return MonthlyForecaster(fitter, config).forecast(series)
