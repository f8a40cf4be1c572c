"""
Unit tests for the top-level estimate service.
"""

import copy
import types
from decimal import Decimal

import pytest
from loguru import logger

from src.core.config import EstimatorSettings
from src.core.enums import COPAY_LOGIC_DESCRIPTIONS, CopayLogic, PlanType, StepCategory
from src.schemas.estimate import Accumulators, Benefits, EstimateRequest
from src.services.estimate.service import (
    EstimateService,
    estimate,
    get_estimate_service,
    oop_exhausted_reason,
)
from src.utils.errors import EstimateRequestError
from src.utils.money import UNLIMITED


@pytest.fixture
def service():
    return EstimateService()


def by_id(result):
    return {e.id: e for e in result.procedure_estimates}


@pytest.mark.unit
class TestOopExhaustedReason:
    """Tests for the early-exit decision."""

    def test_individual(self):
        assert oop_exhausted_reason(PlanType.INDIVIDUAL, Decimal("0"), UNLIMITED) == "Individual OOP Met"
        assert oop_exhausted_reason(PlanType.INDIVIDUAL, Decimal("10"), Decimal("0")) is None

    def test_aggregate_family(self):
        assert oop_exhausted_reason(PlanType.AGGREGATE_FAMILY, Decimal("0"), Decimal("10")) is None
        assert oop_exhausted_reason(PlanType.AGGREGATE_FAMILY, Decimal("10"), Decimal("0")) == "Family OOP Met"

    def test_embedded_family(self):
        assert oop_exhausted_reason(PlanType.EMBEDDED_FAMILY, Decimal("0"), Decimal("10")) == "Individual OOP Met"
        assert oop_exhausted_reason(PlanType.EMBEDDED_FAMILY, Decimal("10"), Decimal("0")) == "Family OOP Met"
        assert oop_exhausted_reason(PlanType.EMBEDDED_FAMILY, Decimal("10"), Decimal("10")) is None


@pytest.mark.unit
class TestEarlyExit:
    """Tests for estimates when the out-of-pocket max is already met."""

    def test_individual_oop_met(self, service, individual_benefits, make_procedure):
        """Test every procedure owes nothing once the OOP max is met."""
        patient = Accumulators(deductible_met="500", oop_met="2000")
        result = service.estimate(
            individual_benefits,
            patient,
            None,
            [make_procedure(id=1, allowed="800"), make_procedure(id=2, allowed="50", is_preventive=True)],
        )

        assert result.total_patient_responsibility == Decimal("0")
        for estimate_ in result.procedure_estimates:
            assert estimate_.total_patient_responsibility == Decimal("0")
            step = estimate_.calculation_breakdown[-1]
            assert step.category == StepCategory.OOP_MET
            assert step.description == "Individual OOP Met"
            assert step.notes == "Patient's OOP max is met or set to $0."
        assert result.final_accumulators.patient == patient
        assert result.summary.early_exit is True

    def test_zero_oop_limit(self, service, make_procedure):
        """Test an explicit $0 OOP max means the plan pays everything."""
        benefits = Benefits(plan_type="Individual", individual_deductible="500", individual_oop_max="0")
        result = service.estimate(benefits, {}, None, [make_procedure(allowed="800", copay="25")])

        assert result.total_patient_responsibility == Decimal("0")
        assert result.procedure_estimates[0].calculation_breakdown[0].category == StepCategory.OOP_MET

    def test_aggregate_family_oop_met(self, service, make_procedure):
        """Test aggregate plans exit on the family limit only."""
        benefits = Benefits(plan_type="AggregateFamily", family_deductible="3000", family_oop_max="6000")
        result = service.estimate(
            benefits, {"oop_met": "100"}, {"oop_met": "6000"}, [make_procedure(allowed="800")]
        )

        assert result.total_patient_responsibility == Decimal("0")
        assert result.procedure_estimates[0].calculation_breakdown[0].description == "Family OOP Met"

    def test_aggregate_ignores_individual_limit(self, service, make_procedure):
        """Test an exhausted individual limit does not stop an aggregate plan."""
        benefits = Benefits(
            plan_type="AggregateFamily",
            individual_oop_max="100",
            family_deductible="0",
            family_oop_max="6000",
            coinsurance_percentage="20",
        )
        result = service.estimate(
            benefits, {"oop_met": "500"}, {"oop_met": "500"}, [make_procedure(allowed="100")]
        )

        assert result.summary.early_exit is False
        assert result.total_patient_responsibility == Decimal("20.00")

    def test_embedded_family_oop_met(self, service, embedded_benefits, make_procedure):
        """Test embedded plans exit when the family limit is exhausted."""
        result = service.estimate(
            embedded_benefits,
            {"oop_met": "1000"},
            {"oop_met": "8000"},
            [make_procedure(allowed="800")],
        )

        assert result.total_patient_responsibility == Decimal("0")
        assert result.procedure_estimates[0].calculation_breakdown[0].description == "Family OOP Met"


@pytest.mark.unit
class TestEstimate:
    """Tests for the full estimate pipeline."""

    def test_deductible_and_coinsurance(self, service, individual_benefits, make_procedure):
        """Test the basic $560 example end to end."""
        result = service.estimate(
            individual_benefits, None, None, [make_procedure(allowed="800", billed_amount="1000")]
        )

        assert result.total_patient_responsibility == Decimal("560.00")
        assert result.final_accumulators.patient.deductible_met == Decimal("500.00")
        assert result.final_accumulators.patient.oop_met == Decimal("560.00")
        assert result.final_accumulators.family is None
        assert result.summary.total_applied_to_deductible == Decimal("500.00")
        assert result.summary.total_out_of_pocket == Decimal("560.00")
        assert result.summary.copay_logic_description == COPAY_LOGIC_DESCRIPTIONS[CopayLogic.STANDARD_WATERFALL]
        assert result.summary.standard_count == 1

    def test_preventive_carve_out(self, service, individual_benefits, make_procedure):
        """Test preventive services cost nothing and touch no accumulator."""
        result = service.estimate(
            individual_benefits,
            {},
            None,
            [
                make_procedure(id=1, allowed="300", is_preventive=True),
                make_procedure(id=2, allowed="800"),
            ],
        )
        preventive, standard = result.procedure_estimates

        assert preventive.total_patient_responsibility == Decimal("0")
        assert preventive.calculation_breakdown[0].category == StepCategory.PREVENTIVE
        assert preventive.calculation_breakdown[0].notes == "This service is covered at 100% by the plan."
        assert preventive.calculation_rank is None
        assert standard.total_patient_responsibility == Decimal("560.00")
        assert standard.calculation_rank == 1
        assert result.summary.preventive_count == 1
        assert result.summary.standard_count == 1

    def test_highest_allowed_processed_first(self, service, make_procedure):
        """Test the deductible lands on the most expensive service and order is restored."""
        benefits = Benefits(
            plan_type="Individual",
            individual_deductible="500",
            individual_oop_max="5000",
            coinsurance_percentage="20",
        )
        result = service.estimate(
            benefits,
            {},
            None,
            [make_procedure(id=1, allowed="100"), make_procedure(id=2, allowed="800")],
        )
        estimates = by_id(result)

        assert [e.id for e in result.procedure_estimates] == [1, 2]
        assert estimates[2].calculation_rank == 1
        assert estimates[2].total_patient_responsibility == Decimal("560.00")
        assert estimates[1].calculation_rank == 2
        assert estimates[1].total_patient_responsibility == Decimal("20.00")

    def test_equal_allowed_keeps_input_order(self, service, individual_benefits, make_procedure):
        """Test equal allowed amounts are processed in input order."""
        result = service.estimate(
            individual_benefits,
            {},
            None,
            [make_procedure(id=1, allowed="300"), make_procedure(id=2, allowed="300")],
        )
        first, second = result.procedure_estimates

        assert (first.calculation_rank, second.calculation_rank) == (1, 2)
        assert first.total_patient_responsibility == Decimal("300.00")
        assert second.total_patient_responsibility == Decimal("220.00")

    def test_highest_copay_only(self, service, make_procedure):
        """Test the highest copay lands on the highest-allowed service only."""
        benefits = Benefits(
            plan_type="Individual",
            individual_deductible="500",
            individual_oop_max="5000",
            coinsurance_percentage="20",
            copay_logic="highest_copay_only",
        )
        result = service.estimate(
            benefits,
            {},
            None,
            [
                make_procedure(id=3, allowed="200", copay="30"),
                make_procedure(id=1, allowed="400", copay="20"),
                make_procedure(id=2, allowed="300", copay="50"),
            ],
        )
        estimates = by_id(result)

        assert [e.id for e in result.procedure_estimates] == [3, 1, 2]
        assert estimates[1].total_patient_responsibility == Decimal("50.00")
        assert estimates[2].total_patient_responsibility == Decimal("0")
        assert estimates[3].total_patient_responsibility == Decimal("0")
        assert [estimates[i].calculation_rank for i in (1, 2, 3)] == [1, 2, 3]
        assert result.total_patient_responsibility == Decimal("50.00")
        assert result.final_accumulators.patient.deductible_met == Decimal("0")

    def test_modifiers_stack(self, service, make_procedure):
        """Test bilateral and co-surgeon modifiers compound before cost sharing."""
        benefits = Benefits(plan_type="Individual", individual_deductible="0", coinsurance_percentage="20")
        result = service.estimate(
            benefits, {}, None, [make_procedure(allowed="200", modifiers="50,62")]
        )
        estimate_ = result.procedure_estimates[0]

        assert estimate_.modified_allowed_amount == Decimal("375.00")
        assert estimate_.final_allowed_amount == Decimal("375.00")
        assert estimate_.calculation_breakdown[0].category == StepCategory.MODIFIER
        assert estimate_.total_patient_responsibility == Decimal("75.00")

    def test_billed_cap(self, service, make_procedure):
        """Test a lower billed amount bounds the patient's exposure."""
        benefits = Benefits(plan_type="Individual", individual_deductible="1000")
        result = service.estimate(
            benefits, {}, None, [make_procedure(allowed="500", billed_amount="300")]
        )

        assert result.total_patient_responsibility == Decimal("300.00")
        assert result.procedure_estimates[0].final_allowed_amount == Decimal("300.00")

    def test_family_plan_without_family_accumulators(self, service, embedded_benefits, make_procedure):
        """Test a family plan starts family accumulators at zero when none are given."""
        result = service.estimate(embedded_benefits, {}, None, [make_procedure(allowed="500")])

        assert result.final_accumulators.family == Accumulators(deductible_met="500", oop_met="500")
        assert result.total_patient_responsibility == Decimal("500.00")

    def test_individual_plan_drops_family_accumulators(self, service, individual_benefits, make_procedure):
        """Test family accumulators are ignored on an individual plan."""
        result = service.estimate(
            individual_benefits, {}, {"oop_met": "100"}, [make_procedure(allowed="800")]
        )

        assert result.final_accumulators.family is None
        assert result.total_patient_responsibility == Decimal("560.00")

    def test_empty_procedures(self, service, individual_benefits):
        """Test an empty visit owes nothing."""
        result = service.estimate(individual_benefits, {}, None, [])

        assert result.procedure_estimates == []
        assert result.total_patient_responsibility == Decimal("0")

    def test_meta_data_passthrough(self, service, individual_benefits, make_procedure, sample_meta_data):
        """Test metadata is echoed and the member id becomes the patient id."""
        result = service.estimate(
            individual_benefits, {}, None, [make_procedure(allowed="100")], sample_meta_data
        )

        assert result.patient_id == "MBR-1001"
        assert result.meta_data.practice.tax_id == "12-3456789"
        assert result.meta_data.service.date == "2026-10-01"


@pytest.mark.unit
class TestEstimateProperties:
    """Tests for properties every estimate must satisfy."""

    @pytest.fixture
    def procedures(self):
        return [
            {"id": 1, "cpt_code": "27447", "allowed_amount": "1200", "billed_amount": "1000", "copay": "40"},
            {"id": 2, "cpt_code": "99214", "allowed_amount": "150", "copay": "25", "modifiers": "50"},
            {"id": 3, "cpt_code": "99395", "allowed_amount": "200", "is_preventive": True},
            {"id": 4, "cpt_code": "73560", "allowed_amount": "90", "coinsurance_percentage": "40"},
        ]

    def test_idempotent(self, service, individual_benefits, procedures):
        """Test the same inputs always give the same estimate."""
        first = service.estimate(individual_benefits, {"deductible_met": "100"}, None, procedures)
        second = service.estimate(individual_benefits, {"deductible_met": "100"}, None, procedures)
        assert first == second

    def test_inputs_not_mutated(self, service, embedded_benefits, procedures):
        """Test caller-supplied mappings are left as they were."""
        patient = {"deductible_met": "100", "oop_met": "100"}
        family = {"deductible_met": "900", "oop_met": "1200"}
        snapshot = copy.deepcopy((patient, family, procedures))

        service.estimate(embedded_benefits, patient, family, procedures)

        assert (patient, family, procedures) == snapshot

    @pytest.mark.parametrize("logic", [logic.value for logic in CopayLogic])
    def test_responsibility_bounded(self, service, procedures, logic):
        """Test each responsibility is between zero and the final allowed amount."""
        benefits = Benefits(
            plan_type="Individual",
            individual_deductible="250",
            individual_oop_max="900",
            coinsurance_percentage="30",
            copay_logic=logic,
        )
        result = service.estimate(benefits, {}, None, procedures)

        for estimate_ in result.procedure_estimates:
            assert Decimal("0") <= estimate_.total_patient_responsibility <= estimate_.final_allowed_amount
        assert result.total_patient_responsibility == sum(
            e.total_patient_responsibility for e in result.procedure_estimates
        )
        assert result.final_accumulators.patient.oop_met <= Decimal("900")

    def test_more_met_never_costs_more(self, service, individual_benefits, procedures):
        """Test responsibility does not grow as more OOP is already met."""
        totals = [
            service.estimate(individual_benefits, {"oop_met": met}, None, procedures).total_patient_responsibility
            for met in ("0", "500", "1500", "1990", "2000")
        ]
        assert totals == sorted(totals, reverse=True)
        assert totals[-1] == Decimal("0")


@pytest.mark.unit
class TestPayloadEntryPoints:
    """Tests for request-model and raw-payload entry points."""

    def test_estimate_request(self, service, make_procedure):
        """Test a validated request model is estimated."""
        request = EstimateRequest(
            benefits={"plan_type": "individual", "individual_deductible": "0", "coinsurance_percentage": "10"},
            procedures=[make_procedure(allowed="100")],
        )
        assert service.estimate_request(request).total_patient_responsibility == Decimal("10.00")

    def test_estimate_from_payload(self, service, sample_meta_data):
        """Test a raw dictionary is validated and estimated."""
        payload = {
            "benefits": {
                "plan_type": "EmbeddedFamily",
                "individual_deductible": "1000",
                "individual_oop_max": "4000",
                "family_deductible": "3000",
                "family_oop_max": "8000",
                "coinsurance_percentage": "20",
                "copay_logic": "highest_copay_plus_remainder",
            },
            "patient_accumulators": {"deductible_met": "1000", "oop_met": "1500"},
            "family_accumulators": {"deductible_met": "1500", "oop_met": "2500"},
            "procedures": [
                {"id": 1, "cpt_code": "99213", "allowed_amount": "150", "copay": "30"},
                {"id": 2, "cpt_code": "80053", "allowed_amount": "100"},
            ],
            "meta_data": sample_meta_data,
        }
        result = service.estimate_from_payload(payload)
        estimates = by_id(result)

        assert estimates[1].total_patient_responsibility == Decimal("30.00")
        assert estimates[2].total_patient_responsibility == Decimal("20.00")
        assert result.total_patient_responsibility == Decimal("50.00")
        assert result.patient_id == "MBR-1001"

    def test_invalid_payload(self, service):
        """Test a structurally invalid payload raises a request error."""
        with pytest.raises(EstimateRequestError) as exc_info:
            service.estimate_from_payload({"benefits": {"plan_type": "HMO"}, "procedures": []})

        assert "benefits.plan_type" in exc_info.value.detail
        assert exc_info.value.errors

    def test_invalid_procedure_mapping(self, service, individual_benefits):
        """Test a procedure mapping without an allowed amount is rejected."""
        with pytest.raises(EstimateRequestError):
            service.estimate(individual_benefits, {}, None, [{"id": 1, "cpt_code": "99213"}])

    def test_module_level_estimate(self, individual_benefits, make_procedure):
        """Test the module-level helper uses the shared service."""
        assert get_estimate_service() is get_estimate_service()
        result = estimate(individual_benefits, None, None, [make_procedure(allowed="800")])
        assert result.total_patient_responsibility == Decimal("560.00")


@pytest.mark.unit
class TestOutOfRangeAmounts:
    """Tests for amounts too large to be real charges."""

    def test_huge_allowed_amount_sanitized(self, service):
        """Test an absurd allowed amount counts as zero instead of failing."""
        result = service.estimate(
            Benefits(plan_type="Individual"),
            {},
            None,
            [{"id": 1, "cpt_code": "99213", "allowed_amount": "1e30"}],
        )

        assert result.total_patient_responsibility == Decimal("0")
        assert result.procedure_estimates[0].final_allowed_amount == Decimal("0")

    def test_huge_limit_and_accumulator(self, service, make_procedure):
        """Test an absurd deductible is unset and an absurd met amount is zero."""
        benefits = Benefits(plan_type="Individual", individual_deductible="1e29")
        result = service.estimate(
            benefits, {"deductible_met": "1e27"}, None, [make_procedure(allowed="100")]
        )

        assert benefits.individual_deductible is None
        assert result.total_patient_responsibility == Decimal("100.00")
        assert result.final_accumulators.patient.deductible_met == Decimal("100.00")


@pytest.mark.unit
class TestServiceSettings:
    """Tests for the settings an EstimateService is built with."""

    @pytest.fixture
    def captured(self):
        messages = []
        handler_id = logger.add(messages.append, level="DEBUG", format="{message}")
        yield messages
        logger.remove(handler_id)

    def test_calculation_steps_logged(self, individual_benefits, make_procedure, captured):
        """Test LOG_CALCULATION_STEPS on the injected settings traces each step."""
        service = EstimateService(settings=EstimatorSettings(LOG_CALCULATION_STEPS=True))
        service.estimate(individual_benefits, {}, None, [make_procedure(allowed="800")])

        assert any("step=deductible" in message for message in captured)
        assert any("step=coinsurance" in message for message in captured)

    def test_calculation_steps_quiet_by_default(self, individual_benefits, make_procedure, captured):
        """Test steps are not traced when the injected settings leave it off."""
        service = EstimateService(settings=EstimatorSettings(LOG_CALCULATION_STEPS=False))
        service.estimate(individual_benefits, {}, None, [make_procedure(allowed="800")])

        assert not any("step=" in message for message in captured)

    def test_environment_not_read_during_estimate(self, monkeypatch, individual_benefits, make_procedure):
        """Test a bad ESTIMATOR_LOG_LEVEL does not affect a service with its own settings."""
        service = EstimateService(settings=EstimatorSettings(LOG_LEVEL="INFO"))
        monkeypatch.setenv("ESTIMATOR_LOG_LEVEL", "verbose")

        result = service.estimate(individual_benefits, {}, None, [make_procedure(allowed="800")])

        assert result.total_patient_responsibility == Decimal("560.00")


@pytest.mark.unit
class TestPackageExports:
    """Tests for the services package namespace."""

    def test_estimate_subpackage_not_shadowed(self):
        """Test src.services.estimate stays the subpackage."""
        import src.services
        import src.services.estimate as estimate_package
        import src.services.estimate.service as service_module

        assert isinstance(estimate_package, types.ModuleType)
        assert isinstance(src.services.estimate, types.ModuleType)
        assert service_module.EstimateService is src.services.EstimateService
        assert callable(estimate_package.estimate)
