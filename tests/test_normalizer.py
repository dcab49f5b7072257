"""
Tests for the metrics normalizer (provider payloads -> canonical shapes).
"""

from datetime import date

import pytest

from finora.core.data_helpers import safe_float
from finora.schemas.company import CompanyMetrics
from finora.services.normalizer import (
    calculate_derived_metrics,
    create_historical_trends,
    latest_annual_report,
    normalize_metrics,
    parse_number,
    transform_chart_data,
)

from tests.conftest import AAPL_BALANCE, AAPL_CASH_FLOW, AAPL_INCOME, AAPL_OVERVIEW, make_daily_series


# =============================================================================
# Safe parsing
# =============================================================================


class TestParseNumber:
    @pytest.mark.parametrize("raw", [None, "None", "-", "", "  ", "N/A", "abc", "NaN", "inf"])
    def test_missing_or_invalid_is_none(self, raw):
        assert parse_number(raw) is None

    def test_plain_numbers(self):
        assert parse_number("30.5") == 30.5
        assert parse_number(42) == 42.0
        assert parse_number("-1.25") == -1.25

    def test_percent_and_thousands_separator(self):
        assert parse_number("31.25%") == 31.25
        assert parse_number("1,234.5") == 1234.5

    def test_bool_is_not_a_number(self):
        assert safe_float(True) is None

    def test_default_returned_on_failure(self):
        assert safe_float("x", default=0.0) == 0.0


# =============================================================================
# Metrics
# =============================================================================


class TestNormalizeMetrics:
    def test_maps_overview_and_latest_statements(self):
        metrics = normalize_metrics(AAPL_OVERVIEW, AAPL_INCOME, AAPL_BALANCE, AAPL_CASH_FLOW)

        assert metrics.symbol == "AAPL"
        assert metrics.name == "Apple Inc"
        assert metrics.market_cap == 3_000_000_000_000
        assert metrics.pe_ratio == 30.5
        assert metrics.eps == 6.1
        assert metrics.revenue == 383_285_000_000
        assert metrics.net_income == 96_995_000_000
        assert metrics.roe == 1.47
        assert metrics.debt_equity == 1.8
        assert metrics.fifty_two_week_high == 199.62
        assert metrics.sector == "TECHNOLOGY"

    def test_latest_report_is_chosen_by_date_not_position(self):
        income = {
            "annualReports": [
                {"fiscalDateEnding": "2021-09-30", "totalRevenue": "1"},
                {"fiscalDateEnding": "2023-09-30", "totalRevenue": "3"},
                {"fiscalDateEnding": "2022-09-30", "totalRevenue": "2"},
            ]
        }
        assert latest_annual_report(income)["totalRevenue"] == "3"

    def test_sentinels_become_none(self):
        overview = {**AAPL_OVERVIEW, "PERatio": "None", "EPS": "-", "Beta": ""}
        metrics = normalize_metrics(overview, {}, {}, {})

        assert metrics.pe_ratio is None
        assert metrics.eps is None
        assert metrics.beta is None
        assert metrics.revenue is None

    def test_missing_sector_defaults(self):
        metrics = normalize_metrics({"Symbol": "XYZ"}, None, None, None)
        assert metrics.sector == "N/A"
        assert metrics.industry == "N/A"
        assert metrics.name == "XYZ"

    def test_malformed_statements_do_not_raise(self):
        metrics = normalize_metrics({"Symbol": "XYZ"}, {"annualReports": "oops"}, [], "x")
        assert metrics.revenue is None
        assert metrics.current_ratio is None


class TestDerivedMetrics:
    def test_profit_margin_derived_when_missing(self):
        metrics = CompanyMetrics(revenue=200.0, net_income=50.0)
        derived = calculate_derived_metrics(metrics)
        assert derived.profit_margin == pytest.approx(25.0)

    def test_provider_profit_margin_kept(self):
        metrics = CompanyMetrics(revenue=200.0, net_income=50.0, profit_margin=0.3)
        assert calculate_derived_metrics(metrics).profit_margin == 0.3

    def test_roe_approximated_from_market_cap(self):
        metrics = CompanyMetrics(net_income=10.0, market_cap=1000.0)
        assert calculate_derived_metrics(metrics).roe == pytest.approx(1.0)

    def test_no_division_by_zero(self):
        metrics = CompanyMetrics(revenue=0.0, net_income=5.0, market_cap=0.0)
        derived = calculate_derived_metrics(metrics)
        assert derived.profit_margin is None
        assert derived.roe is None

    def test_input_not_mutated(self):
        metrics = CompanyMetrics(revenue=100.0, net_income=10.0)
        calculate_derived_metrics(metrics)
        assert metrics.profit_margin is None


# =============================================================================
# Chart data
# =============================================================================


class TestTransformChartData:
    def test_keeps_most_recent_points_ascending(self):
        points = transform_chart_data(make_daily_series(400), max_points=365)

        assert len(points) == 365
        assert points == sorted(points, key=lambda p: p.date)
        # Newest of 400 days starting 2024-01-01
        assert points[-1].date == date(2025, 2, 3)
        assert points[-1].close == 499.0

    def test_short_series_kept_whole(self):
        points = transform_chart_data(make_daily_series(3))
        assert [p.date for p in points] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
        assert points[0].open == 99.0
        assert points[0].volume == 1_000_000

    def test_bad_keys_and_bars_skipped(self):
        series = {
            "2024-01-02": {"4. close": "10"},
            "not-a-date": {"4. close": "11"},
            "2024-01-03": "garbage",
        }
        points = transform_chart_data(series)
        assert len(points) == 1
        assert points[0].close == 10.0

    @pytest.mark.parametrize("raw", [None, {}, [], "x"])
    def test_empty_or_invalid_series(self, raw):
        assert transform_chart_data(raw) == []


# =============================================================================
# Historical trends
# =============================================================================


class TestHistoricalTrends:
    def test_pairs_statements_newest_first(self):
        trends = create_historical_trends(AAPL_INCOME, AAPL_BALANCE)

        assert [t.fiscal_date_ending for t in trends] == ["2023-09-30", "2022-09-30"]
        assert trends[0].year == "2023"
        assert trends[0].revenue == 383_285_000_000
        assert trends[0].shareholder_equity == 62_146_000_000

    def test_one_sided_dates_keep_missing_fields_none(self):
        income = {"annualReports": [{"fiscalDateEnding": "2020-12-31", "totalRevenue": "5"}]}
        trends = create_historical_trends(income, {})
        assert len(trends) == 1
        assert trends[0].revenue == 5.0
        assert trends[0].total_assets is None

    def test_capped_at_years(self):
        income = {
            "annualReports": [
                {"fiscalDateEnding": f"{year}-12-31", "totalRevenue": str(year)} for year in range(2010, 2024)
            ]
        }
        trends = create_historical_trends(income, None, years=5)
        assert [t.year for t in trends] == ["2023", "2022", "2021", "2020", "2019"]
