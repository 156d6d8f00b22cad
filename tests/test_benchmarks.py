"""Tests for benchmark validation alerts and site infrastructure costs."""

import pytest

from elpgreen.benchmarks import (
    BENCHMARKS, COUNTRY_INDUSTRIAL_COSTS, calculate_infrastructure_costs, industrial_cost_countries,
    plant_size_for_capacity, summarize_alerts, validate_feasibility,
)


def _checks(alerts):
    return {a["check"] for a in alerts}


class TestValidateFeasibility:
    """Tests for benchmark alert rules."""

    def test_default_plant(self, sample_study):
        """Test the default plant only trips the EBITDA margin warning."""
        alerts = validate_feasibility(sample_study)

        assert _checks(alerts) == {"healthyRoi", "highEbitda"}
        assert summarize_alerts(alerts)["hasBlockingIssues"] is False

    def test_extreme_roi_is_blocking(self, sample_study):
        """Test unrealistic ROI and IRR raise errors."""
        alerts = validate_feasibility({**sample_study, "roi_percentage": 120, "irr_percentage": 95})
        summary = summarize_alerts(alerts)

        assert {"extremeRoi", "extremeIrr"} <= _checks(alerts)
        assert summary["error"] == 2
        assert summary["hasBlockingIssues"] is True

    def test_high_roi_with_low_tax(self, sample_study):
        """Test low tax rate flags an inflated ROI."""
        alerts = validate_feasibility({**sample_study, "roi_percentage": 60, "tax_rate": 5})

        assert {"highRoi", "lowTaxHighRoi"} <= _checks(alerts)

    def test_investment_bounds(self, sample_study):
        """Test under- and over-capitalised plants."""
        low = validate_feasibility({**sample_study, "total_investment": 100_000})
        high = validate_feasibility({**sample_study, "total_investment": 85 * BENCHMARKS["investmentPerTon"]["max"] * 2})

        assert "lowInvestment" in _checks(low)
        assert "highInvestment" in _checks(high)

    def test_investment_check_skipped_without_capacity(self, sample_study):
        """Test zero capacity disables the per-ton investment check."""
        alerts = validate_feasibility({**sample_study, "daily_capacity_tons": 0, "total_investment": 1})

        assert not _checks(alerts) & {"lowInvestment", "highInvestment"}

    def test_yield_bounds(self, sample_study):
        """Test combined yield above and below the industry range."""
        high = validate_feasibility({**sample_study, "rubber_granules_yield": 60})
        low = validate_feasibility({**sample_study, "rubber_granules_yield": 20})

        assert "highYield" in _checks(high)
        assert "lowYield" in _checks(low)

    def test_price_and_payback_checks(self, sample_study):
        """Test premium rCB price and implausibly fast payback."""
        alerts = validate_feasibility({**sample_study, "rcb_price": 1600, "payback_months": 10})

        assert {"highRcbPrice", "fastPayback"} <= _checks(alerts)

    def test_alert_shape(self, sample_study):
        """Test alerts carry level, category and detail."""
        alert = next(a for a in validate_feasibility(sample_study) if a["check"] == "highEbitda")

        assert alert["level"] == "warning"
        assert alert["category"] == "revenue"
        assert alert["benchmarkRange"] == "15%-55%"
        assert alert["value"].endswith("%")


class TestSummarizeAlerts:
    """Tests for alert counts."""

    def test_empty(self):
        """Test summary of no alerts."""
        assert summarize_alerts([]) == {"error": 0, "warning": 0, "info": 0, "success": 0,
                                        "total": 0, "hasBlockingIssues": False}


class TestInfrastructureCosts:
    """Tests for the per-country site cost calculator."""

    def test_brazil_medium_plant(self):
        """Test utilities, payroll, land and permits for a 100 t/day plant in Brazil."""
        costs = calculate_infrastructure_costs("br", 100, 1_000_000)

        assert (costs["countryCode"], costs["plantSize"], costs["landPlot"]) == ("BR", "medium", "medium")
        assert costs["electricity"]["monthlyConsumptionKWh"] == pytest.approx(806_130)
        assert costs["electricity"]["totalMonthlyCost"] == pytest.approx(119_260.6)
        assert costs["electricity"]["costPerTon"] == pytest.approx(119_260.6 / 2600)
        assert costs["water"]["monthlyConsumptionM3"] == pytest.approx(1950)
        assert costs["water"]["totalMonthlyCost"] == pytest.approx(10_767)
        assert costs["labor"]["factoryPayroll"] == 19_500
        assert costs["labor"]["socialCharges"] == pytest.approx(33_320)
        assert costs["labor"]["totalMonthlyLabor"] == pytest.approx(82_320)
        assert costs["land"]["totalLandInfra"] == 1_065_000
        assert costs["installation"]["totalInstallation"] == pytest.approx(468_250)
        assert costs["totalMonthlyOpex"] == pytest.approx(212_347.6)
        assert costs["totalCapex"] == pytest.approx(1_533_250)
        assert costs["annualOpex"] == pytest.approx(212_347.6 * 12)

    def test_explicit_size_and_plot(self):
        """Test an explicit plant size and land plot override the capacity defaults."""
        costs = calculate_infrastructure_costs("DE", 60, 0, plant_size="xlarge", land_plot_id="small")

        assert costs["plantSize"] == "xlarge"
        assert costs["land"]["purchaseCost"] == 2000 * 180
        assert costs["installation"]["equipmentInstallation"] == 0
        assert calculate_infrastructure_costs("DE", 60, land_plot_id="moon")["landPlot"] == "medium"

    @pytest.mark.parametrize("capacity,size", [(50, "small"), (80, "small"), (81, "medium"), (250, "large"),
                                               (400, "xlarge")])
    def test_plant_size_for_capacity(self, capacity, size):
        """Test capacity bands."""
        assert plant_size_for_capacity(capacity) == size

    def test_country_listing(self):
        """Test every country appears once under its region."""
        countries = industrial_cost_countries()

        assert len(countries) == len(COUNTRY_INDUSTRIAL_COSTS) == 29
        assert {"code": "CL", "name": "Chile", "region": "Americas", "electricityPrice": 0.11,
                "laborCost": 900} in countries

    @pytest.mark.parametrize("args,kwargs,message", [
        (("ZZ", 100), {}, "not found"),
        ((None, 100), {}, "not found"),
        (("BR", 0), {}, "daily_capacity_tons"),
        (("BR", "100"), {}, "daily_capacity_tons"),
        (("BR", float("nan")), {}, "daily_capacity_tons"),
        (("BR", 100, -1), {}, "equipment_cost"),
        (("BR", 100), {"operating_days_per_month": 40}, "operating_days_per_month"),
        (("BR", 100), {"plant_size": "huge"}, "plant_size"),
    ])
    def test_invalid_inputs(self, args, kwargs, message):
        """Test unknown countries and out-of-range inputs."""
        with pytest.raises(ValueError, match=message):
            calculate_infrastructure_costs(*args, **kwargs)
