"""Tests for plant financials, templates and study persistence."""

import math

import pytest

from elpgreen import feasibility
from elpgreen.feasibility import (
    annual_tonnage, apply_template, calculate_financials, default_study, delete_study, get_regulations,
    get_study, irr, list_studies, npv, partnership_impact, product_revenues, safe_num, save_study,
    validate_study_payload, viability_rating,
)


class TestCalculateFinancials:
    """Tests for the headline financial outputs."""

    def test_default_study_outputs(self):
        """Test the default 85 t/day plant."""
        result = calculate_financials(default_study())

        assert result["total_investment"] == 10_500_000
        assert result["annual_revenue"] == pytest.approx(6_623_880)
        assert result["annual_opex"] == 1_800_000
        assert result["annual_ebitda"] == pytest.approx(4_823_880)
        assert result["payback_months"] == 33
        assert result["roi_percentage"] == pytest.approx(36.956, abs=0.01)
        assert result["npv_10_years"] > 0
        assert 30 < result["irr_percentage"] < 40

    def test_annual_tonnage(self):
        """Test tonnage is capacity x days x utilization."""
        assert annual_tonnage(default_study()) == pytest.approx(21_675)

    def test_product_revenues(self):
        """Test revenue split by recovered product."""
        revenues = product_revenues(default_study(), 21_675)

        assert revenues["granules"] == pytest.approx(2_330_062.5)
        assert revenues["steel"] == pytest.approx(1_354_687.5)
        assert revenues["textile"] == pytest.approx(208_080)
        assert revenues["rcb"] == pytest.approx(2_731_050)

    def test_taxes_on_ebitda_less_depreciation(self):
        """Test net profit reflects tax on EBITDA minus straight-line depreciation."""
        result = calculate_financials(default_study())
        net_profit = result["roi_percentage"] * result["total_investment"] / 100

        assert net_profit == pytest.approx(3_880_410)

    def test_unprofitable_plant_payback_sentinel(self):
        """Test payback is 999 months when net profit is not positive."""
        study = {**default_study(), "labor_cost": 900_000}
        result = calculate_financials(study)

        assert result["annual_ebitda"] < 0
        assert result["payback_months"] == 999

    def test_zero_inputs_fall_back_to_defaults(self):
        """Test missing capacity inputs use the calculator defaults."""
        study = {**default_study(), "daily_capacity_tons": 0, "operating_days_per_year": None}

        assert annual_tonnage(study) == pytest.approx(50 * 300 * 0.85)

    def test_no_investment_gives_zero_roi(self):
        """Test ROI is 0 without CAPEX."""
        study = {**default_study(), **{f: 0 for f in feasibility.CAPEX_FIELDS}}

        assert calculate_financials(study)["roi_percentage"] == 0


class TestDiscountedCashFlow:
    """Tests for NPV and IRR helpers."""

    def test_npv_at_irr_is_near_zero(self):
        """Test NPV evaluated at the IRR vanishes."""
        rate = irr(1_000_000, 250_000)

        assert abs(npv(1_000_000, 250_000, rate)) < 100

    def test_npv_zero_rate(self):
        """Test undiscounted NPV is the plain sum."""
        assert npv(1000, 200, 0.0) == pytest.approx(1000)

    def test_irr_is_finite_for_negative_cash_flow(self):
        """Test IRR does not diverge for loss-making plants."""
        assert math.isfinite(irr(1_000_000, -50_000))

    @pytest.mark.parametrize("rate", [-100, -150, "-100"])
    def test_discount_rate_at_or_below_minus_100(self, rate):
        """Test a discount rate that zeroes the discount factor is refused."""
        with pytest.raises(ValueError, match="discount_rate"):
            calculate_financials({**default_study(), "discount_rate": rate})
        with pytest.raises(ValueError, match="-100%"):
            npv(1000, 200, -1.0)

    def test_discount_rate_above_minus_100(self):
        """Test negative rates above -100 still compute."""
        result = calculate_financials({**default_study(), "discount_rate": -50})

        assert math.isfinite(result["npv_10_years"])
        assert result["npv_10_years"] > calculate_financials(default_study())["npv_10_years"]

    def test_non_finite_inputs_use_defaults(self):
        """Test NaN and infinite strings fall back like missing values."""
        assert calculate_financials({**default_study(), "discount_rate": "nan", "daily_capacity_tons": "inf"}) == \
            calculate_financials({**default_study(), "daily_capacity_tons": 50})


class TestPartnershipImpact:
    """Tests for royalty and environmental bonus effects."""

    def test_royalty_and_bonus(self):
        """Test net revenue after royalties and bonus."""
        impact = partnership_impact(1_000_000, 10_000, 5, 8)

        assert impact["annualRoyalties"] == 50_000
        assert impact["annualEnvBonus"] == 80_000
        assert impact["netRevenue"] == 1_030_000
        assert impact["netImpact"] == 30_000
        assert impact["adjustedRevenuePercent"] == pytest.approx(103)

    def test_zero_revenue(self):
        """Test adjusted percent is 100 with no revenue."""
        assert partnership_impact(0, 100, 5, 0)["adjustedRevenuePercent"] == 100


class TestAnalysisInputs:
    """Tests for payload validation and rating rules."""

    def test_validate_payload(self):
        """Test valid and invalid analysis payloads."""
        assert validate_study_payload({"study_name": "A", "roi_percentage": 12.5}) == (True, None)
        assert validate_study_payload(None)[0] is False
        assert validate_study_payload({"roi_percentage": 10})[0] is False
        ok, error = validate_study_payload({"study_name": "A", "tax_rate": "25"})
        assert not ok
        assert "tax_rate" in error

    def test_bool_is_not_a_number(self):
        """Test booleans are rejected as numeric fields."""
        assert validate_study_payload({"study_name": "A", "utilization_rate": True})[0] is False

    def test_safe_num(self):
        """Test NaN, strings and booleans fall back to the default."""
        assert safe_num(float("nan"), 7) == 7
        assert safe_num("12", 3) == 3
        assert safe_num(True, 1) == 1
        assert safe_num(4.5) == 4.5

    @pytest.mark.parametrize("roi,irr_pct,payback,npv_value,expected", [
        (35, 30, 30, 1, "Excellent"),
        (25, 20, 40, 1, "Good"),
        (35, 30, 30, -1, "Moderate"),
        (15, 13, 55, -1, "Moderate"),
        (8, 5, 80, -1, "Risky"),
        (3, 2, 120, -1, "Not Recommended"),
    ])
    def test_viability_rating(self, roi, irr_pct, payback, npv_value, expected):
        """Test the rating ladder."""
        assert viability_rating(roi, irr_pct, payback, npv_value) == expected


class TestTemplatesAndRegulations:
    """Tests for regional templates and country regulations."""

    def test_ten_templates(self):
        """Test template catalog size and lookup."""
        assert len(feasibility.FEASIBILITY_TEMPLATES) == 10
        assert feasibility.get_template("brazil-north")["country"] == "Brasil"
        assert feasibility.get_template("atlantis") is None

    def test_apply_template_recomputes(self):
        """Test template values override the study and outputs are recomputed."""
        merged = apply_template({**default_study(), "study_name": "X", "notes": "keep"}, "australia")

        assert merged["country"] == "Australia"
        assert merged["daily_capacity_tons"] == 100
        assert merged["total_investment"] == 6_500_000
        assert merged["notes"] == "keep"

    def test_apply_unknown_template(self):
        """Test unknown template id raises."""
        with pytest.raises(ValueError):
            apply_template(default_study(), "atlantis")

    def test_regulation_aliases(self):
        """Test Portuguese name alias and default fallback."""
        assert get_regulations("Brasil") is feasibility.COUNTRY_REGULATIONS["Brazil"]
        assert get_regulations("USA")["agency"].startswith("EPA")
        assert get_regulations("Narnia") is feasibility.DEFAULT_REGULATIONS


class TestStudyPersistence:
    """Tests for study CRUD against the document store."""

    def test_create_update_delete(self, db):
        """Test full lifecycle with recomputed outputs."""
        study = save_study(db, {"study_name": "Antofagasta", "country": "Chile", "annual_revenue": 1})

        assert study["id"]
        assert study["annual_revenue"] == pytest.approx(6_623_880)
        assert get_study(db, study["id"]) is study

        updated = save_study(db, {"id": study["id"], "study_name": "Antofagasta II", "daily_capacity_tons": 100})
        assert updated["study_name"] == "Antofagasta II"
        assert updated["total_investment"] == 10_500_000
        assert updated["annual_revenue"] > 6_623_880

        assert delete_study(db, study["id"]) is True
        assert delete_study(db, study["id"]) is False
        actions = [a["action"] for a in db["activity_log"]]
        assert actions == ["study_created", "study_updated", "study_deleted"]

    def test_requires_name_and_valid_status(self, db):
        """Test validation errors."""
        with pytest.raises(ValueError):
            save_study(db, {"country": "Chile"})
        with pytest.raises(ValueError):
            save_study(db, {"study_name": "A", "status": "done"})

    def test_failed_calculation_leaves_store_unchanged(self, db):
        """Test a rejected discount rate neither adds nor alters a study."""
        study = save_study(db, {"study_name": "Antofagasta"})

        with pytest.raises(ValueError, match="discount_rate"):
            save_study(db, {"study_name": "Broken", "discount_rate": -100})
        with pytest.raises(ValueError, match="discount_rate"):
            save_study(db, {"id": study["id"], "study_name": "Renamed", "discount_rate": -100})

        assert [s["study_name"] for s in db["feasibility_studies"]] == ["Antofagasta"]
        assert study["discount_rate"] == 12

    def test_list_filters(self, db):
        """Test country filter is case-insensitive."""
        save_study(db, {"study_name": "A", "country": "Chile"})
        save_study(db, {"study_name": "B", "country": "Brasil", "status": "approved"})

        assert [s["study_name"] for s in list_studies(db, country="chile")] == ["A"]
        assert [s["study_name"] for s in list_studies(db, status="approved")] == ["B"]
