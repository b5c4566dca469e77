"""Tests for the bill analysis pipeline: engine, persistence, LLM steps and config."""

import json
import logging
from pathlib import Path

import pytest
from llama_index.core.llms import CompletionResponse

from billbuddy.config import (
    DEFAULT_EQUIVALENT_CODE_SETS,
    ExtractConfig,
    ParseConfig,
    ReportConfig,
    ValidationConfig,
    load_config_section,
    load_validation_config,
)
from billbuddy.disputes import (
    DisputeContext,
    generate_dispute_letter,
    generate_email_template,
    split_email,
)
from billbuddy.errors import ExtractionError, InvalidBillError
from billbuddy.extraction import LLMBillExtractor, build_extractor
from billbuddy.persistence import InMemoryLineItemStore, persist_flag_annotations
from billbuddy.process_file import BillAnalysisWorkflow, _analysis_payload, workflow
from billbuddy.reference import BenchmarkPriceTable, CodeDescriptor, CodeReferenceTable
from billbuddy.reporting import (
    build_analysis_record,
    fallback_report,
    generate_analysis_report,
)
from billbuddy.schemas import (
    FlagAnnotation,
    FlagSeverity,
    FlagType,
    LineItem,
    StructuredBill,
)
from billbuddy.validators import (
    CodeValidator,
    DuplicateDetector,
    OverchargeDetector,
    ValidationEngine,
    run_validation,
)

CONFIG_PATH = Path(__file__).parent.parent / "configs" / "config.json"


class StubLLM:
    """Returns canned completions and records the prompts it was sent."""

    def __init__(self, *replies: str):
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def acomplete(self, prompt: str, **kwargs) -> CompletionResponse:
        self.prompts.append(prompt)
        return CompletionResponse(text=self.replies.pop(0))


def _make_engine(tolerance: float = 0.0) -> ValidationEngine:
    """Engine with small, controlled reference data."""
    reference = CodeReferenceTable(
        {
            "CPT": {
                "99213": CodeDescriptor(description="Office visit"),
                "99999": CodeDescriptor(description="Retired code", valid=False),
            }
        }
    )
    benchmarks = BenchmarkPriceTable({"99213": 100.0, "99999": 10.0, "74177": 200.0})
    return ValidationEngine(
        CodeValidator(reference),
        OverchargeDetector(benchmarks, tolerance),
        DuplicateDetector(DEFAULT_EQUIVALENT_CODE_SETS),
    )


def _make_bill(*items: dict) -> dict:
    return {
        "patient_info": {"name": "Jamie Rivera", "account_number": "A-1001"},
        "provider": {"name": "City Hospital"},
        "service_date": "2024-03-02",
        "line_items": list(items),
        "summary": {"total_charges": 0},
    }


# --- Validation engine ---


class TestValidationEngine:
    """Tests for the validation orchestrator."""

    def test_empty_bill(self) -> None:
        result = _make_engine().run_validation("bill-1", {"line_items": []})
        assert result.flags == []
        assert result.duplicates == []
        assert result.overcharges == []
        assert result.invalid_codes == []
        assert result.total_issues == 0
        assert result.potential_savings == 0.0

    def test_missing_line_items_is_empty(self) -> None:
        assert _make_engine().run_validation("bill-1", {}).total_issues == 0
        assert _make_engine().run_validation("bill-1", {"line_items": None}).total_issues == 0

    @pytest.mark.parametrize(
        "bill",
        [{"line_items": "99213"}, {"line_items": 5}, {"line_items": ["99213"]}, ["99213"]],
    )
    def test_malformed_bill_raises(self, bill) -> None:
        with pytest.raises(InvalidBillError):
            _make_engine().run_validation("bill-1", bill)

    def test_flag_order_and_types(self) -> None:
        """Duplicates come first, then per-line checks in line order."""
        bill = _make_bill(
            {"description": "Office visit", "code": "99213", "code_type": "CPT", "total_charge": 150},
            {"description": "Old visit", "code": "99999", "code_type": "CPT", "total_charge": 500},
            {"description": "Office visit", "code": "99213", "code_type": "CPT", "total_charge": 150},
        )
        result = _make_engine().run_validation("bill-1", bill)

        assert [f.type for f in result.flags] == [
            FlagType.DUPLICATE,
            FlagType.OVERCHARGE,
            FlagType.INVALID_CODE,
            FlagType.OVERCHARGE,
        ]
        assert result.total_issues == len(result.flags) == 4
        assert len(result.duplicates) == 1
        assert len(result.invalid_codes) == 1
        assert len(result.overcharges) == 2

    def test_severity_fixed_per_type(self) -> None:
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
            {"code": "ABC", "code_type": "CPT", "total_charge": 20},
        )
        result = _make_engine().run_validation("bill-1", bill)
        severities = {f.type: f.severity for f in result.flags}
        assert severities[FlagType.DUPLICATE] == FlagSeverity.HIGH
        assert severities[FlagType.OVERCHARGE] == FlagSeverity.HIGH
        assert severities[FlagType.INVALID_CODE] == FlagSeverity.MEDIUM

    def test_invalid_code_skips_overcharge(self) -> None:
        bill = _make_bill({"code": "99999", "code_type": "CPT", "total_charge": 500})
        result = _make_engine().run_validation("bill-1", bill)
        assert [f.type for f in result.flags] == [FlagType.INVALID_CODE]
        assert result.flags[0].potential_savings is None
        assert result.flags[0].message.startswith("Invalid code: 99999 - ")

    def test_unrecognized_type_never_invalid(self) -> None:
        bill = _make_bill({"code": "J1234??", "code_type": "HCPCS", "total_charge": 75})
        assert _make_engine().run_validation("bill-1", bill).total_issues == 0

    def test_overcharge_only_for_cpt(self) -> None:
        bill = _make_bill({"code": "99213", "code_type": "REV", "total_charge": 5000})
        result = _make_engine().run_validation("bill-1", bill)
        assert result.overcharges == []

    def test_overcharge_detail(self) -> None:
        bill = _make_bill(
            {"description": "Office visit", "code": "99213-25", "code_type": "CPT", "total_charge": 150}
        )
        result = _make_engine().run_validation("bill-1", bill)
        detail = result.overcharges[0]
        assert detail.code == "99213-25"
        assert detail.benchmark == 100.0
        assert detail.percent_over == 50
        assert detail.potential_savings == 50.0
        assert result.flags[0].message == "Charge is 50% above benchmark"

    def test_untyped_items_still_checked_for_duplicates(self) -> None:
        bill = _make_bill(
            {"description": "Supplies", "code": "A4550", "total_charge": 30},
            {"description": "Supplies", "code": "A4550", "total_charge": 30},
        )
        result = _make_engine().run_validation("bill-1", bill)
        assert [f.type for f in result.flags] == [FlagType.DUPLICATE]
        assert result.potential_savings == 30.0

    def test_equivalent_codes_flagged_as_duplicate(self) -> None:
        bill = _make_bill(
            {"description": "CT abd/pelvis w/ contrast", "code": "74177", "code_type": "CPT", "total_charge": 150},
            {"description": "CT abd/pelvis w/o contrast", "code": "74176", "code_type": "CPT", "total_charge": 125},
        )
        result = _make_engine().run_validation("bill-1", bill)
        assert len(result.duplicates) == 1
        assert result.flags[0].code == "74176/74177"
        assert result.flags[0].potential_savings == 125.0

    def test_malformed_amounts_coerced(self) -> None:
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": "$1,200.50"},
            {"code": "80053", "code_type": "CPT", "total_charge": "call office"},
        )
        result = _make_engine().run_validation("bill-1", bill)
        assert result.overcharges[0].charged == 1200.50
        assert result.overcharges[0].potential_savings == 1100.50
        assert len(result.overcharges) == 1

    def test_out_of_range_amount_coerced(self) -> None:
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 10**400},
            {"code": "80053", "code_type": "CPT", "total_charge": 20},
        )
        result = _make_engine().run_validation("bill-1", bill)
        assert result.overcharges == []
        assert result.potential_savings == 0.0

    def test_savings_not_double_counted(self) -> None:
        """A disputed duplicate line's overcharge is already covered by its group."""
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
        )
        result = _make_engine().run_validation("bill-1", bill)

        # Duplicate: $150 for the second visit; overcharge: $50 on the first only
        assert result.duplicates[0].potential_savings == 150.0
        assert sum(o.potential_savings for o in result.overcharges) == 100.0
        assert result.potential_savings == 200.0
        assert sum(f.potential_savings or 0 for f in result.flags) == 250.0

    def test_savings_sum_independent_groups(self) -> None:
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 130},
            {"code": "A4550", "total_charge": 20},
            {"code": "A4550", "total_charge": 20},
        )
        result = _make_engine().run_validation("bill-1", bill)
        assert result.potential_savings == 50.0

    def test_idempotent(self) -> None:
        bill = StructuredBill.model_validate(
            _make_bill(
                {"code": "99213", "code_type": "CPT", "total_charge": 150},
                {"code": "99213", "code_type": "CPT", "total_charge": 150},
                {"code": "99999", "code_type": "CPT", "total_charge": 10},
            )
        )
        engine = _make_engine()
        first = engine.run_validation("bill-1", bill)
        second = engine.run_validation("bill-1", bill)
        assert first.model_dump() == second.model_dump()

    def test_tolerance_from_config(self) -> None:
        engine = ValidationEngine.from_config(
            ValidationConfig(
                overcharge_tolerance_percent=25, benchmark_overrides={"99213": 100.0}
            )
        )
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 120},
            {"code": "99213", "code_type": "CPT", "total_charge": 130},
        )
        result = engine.run_validation("bill-1", bill)
        assert [o.line_index for o in result.overcharges] == [1]

    def test_default_engine(self) -> None:
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 200},
            {"code": "99201", "code_type": "CPT", "total_charge": 80},
        )
        result = run_validation("bill-1", bill)
        assert result.overcharges[0].benchmark == 92.0
        assert result.overcharges[0].percent_over == 117
        assert result.invalid_codes[0].code == "99201"


# --- Persistence ---


class TestFlagPersistence:
    """Tests for writing overcharge flags back to stored line items."""

    @pytest.mark.asyncio
    async def test_overcharge_annotated(self) -> None:
        bill = StructuredBill.model_validate(
            _make_bill(
                {"description": "Office visit", "code": "99213", "code_type": "CPT", "total_charge": 150},
                {"description": "Panel", "code": "80053", "code_type": "CPT", "total_charge": 5},
            )
        )
        store = InMemoryLineItemStore()
        await store.save_line_items("bill-1", bill.line_items)

        result = _make_engine().run_validation("bill-1", bill)
        written = await persist_flag_annotations("bill-1", result, store)

        assert written == 1
        flagged = await store.flagged_line_items("bill-1")
        assert len(flagged) == 1
        assert flagged[0].code == "99213"
        assert flagged[0].flag_type == FlagType.OVERCHARGE
        assert flagged[0].flag_severity == FlagSeverity.HIGH
        assert "above the benchmark" in flagged[0].flag_explanation

    @pytest.mark.asyncio
    async def test_store_failure_is_logged_not_raised(self, caplog) -> None:
        class FlakyStore(InMemoryLineItemStore):
            async def update_line_item_flag(self, bill_id, code, annotation):
                if code == "99213":
                    raise ConnectionError("store unavailable")
                return await super().update_line_item_flag(bill_id, code, annotation)

        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
            {"code": "74177", "code_type": "CPT", "total_charge": 400},
        )
        result = _make_engine().run_validation("bill-1", bill)

        with caplog.at_level(logging.WARNING, logger="billbuddy.persistence"):
            written = await persist_flag_annotations("bill-1", result, FlakyStore())

        assert written == 1
        assert result.total_issues == 2
        assert "Failed to annotate line item 99213" in caplog.text

    @pytest.mark.asyncio
    async def test_update_matches_bill_and_code(self) -> None:
        store = InMemoryLineItemStore()
        items = [LineItem(code="99213", total_charge=10), LineItem(code="99214")]
        await store.save_line_items("bill-1", items)
        await store.save_line_items("bill-2", items)

        annotation = FlagAnnotation(
            flag_type=FlagType.OVERCHARGE,
            flag_severity=FlagSeverity.HIGH,
            flag_explanation="Too high",
        )
        assert await store.update_line_item_flag("bill-1", "99213", annotation) == 1
        assert await store.flagged_line_items("bill-2") == []

    @pytest.mark.asyncio
    async def test_clear_drops_only_that_bill(self) -> None:
        store = InMemoryLineItemStore()
        items = [LineItem(code="99213"), LineItem(code="80053")]
        await store.save_line_items("bill-1", items)
        await store.save_line_items("bill-2", items)

        assert await store.clear("bill-1") == 2
        assert await store.line_items("bill-1") == []
        assert len(await store.line_items("bill-2")) == 2
        assert await store.clear("bill-1") == 0


# --- LLM steps ---


EXTRACTED_BILL = {
    "patient_info": {"name": "Jamie Rivera", "dob": "", "account_number": "A-1001"},
    "provider": {"name": "City Hospital", "address": ""},
    "service_date": "2024-03-02",
    "line_items": [
        {
            "description": "Office visit",
            "code": "99213",
            "code_type": "cpt",
            "quantity": "",
            "unit_price": "145.00",
            "total_charge": "$145.00",
        },
        {"description": "Gauze", "code": "", "code_type": "", "total_charge": 12},
    ],
    "summary": {"total_charges": "157", "insurance_paid": 0, "patient_responsibility": 157},
}


class TestExtraction:
    """Tests for structured-bill extraction."""

    @pytest.mark.asyncio
    async def test_fenced_json_parsed(self) -> None:
        llm = StubLLM("```json\n" + json.dumps(EXTRACTED_BILL) + "\n```")
        bill = await LLMBillExtractor(llm).extract("CITY HOSPITAL ... 99213 $145.00")

        assert "99213 $145.00" in llm.prompts[0]
        assert bill.provider.name == "City Hospital"
        assert bill.patient_info.dob is None
        assert bill.summary.total_charges == 157.0
        first, second = bill.line_items
        assert first.code_type == "CPT"
        assert first.quantity == 1
        assert first.total_charge == 145.0
        assert second.code is None
        assert second.code_type is None

    @pytest.mark.asyncio
    async def test_unparsable_reply_raises(self) -> None:
        llm = StubLLM("I could not read this bill.")
        with pytest.raises(ExtractionError):
            await LLMBillExtractor(llm).extract("???")

    @pytest.mark.parametrize("provider", ["openai", "anthropic"])
    def test_max_tokens_reaches_llm(self, monkeypatch, provider) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        extractor = build_extractor(ExtractConfig(provider=provider, max_tokens=1234))
        assert extractor.llm.max_tokens == 1234


class TestReporting:
    """Tests for the patient report."""

    def _result(self):
        bill = _make_bill(
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
            {"code": "99213", "code_type": "CPT", "total_charge": 150},
        )
        return StructuredBill.model_validate(bill), _make_engine().run_validation("bill-1", bill)

    @pytest.mark.asyncio
    async def test_counts_come_from_validation(self) -> None:
        bill, result = self._result()
        reply = {
            "summary": "You were billed twice for one visit.",
            "total_flags": 99,
            "potential_savings": 1,
            "detailed_findings": [{"issue": "Duplicate visit", "impact": "$150", "recommendation": "Call"}],
            "recommendations": ["Call the billing office"],
            "severity": "high",
        }
        report = await generate_analysis_report(StubLLM(json.dumps(reply)), bill, result)

        assert report.total_flags == result.total_issues
        assert report.potential_savings == result.potential_savings == 200.0
        assert report.severity == "high"
        assert report.detailed_findings[0].issue == "Duplicate visit"

    @pytest.mark.asyncio
    async def test_unusable_reply_falls_back(self) -> None:
        bill, result = self._result()
        report = await generate_analysis_report(StubLLM("not json"), bill, result)
        assert report.severity == "high"
        assert report.total_flags == 3
        assert "$200.00" in report.summary

    @pytest.mark.asyncio
    async def test_analysis_record(self) -> None:
        bill, result = self._result()
        report = await generate_analysis_report(StubLLM("{}"), bill, result)
        record = build_analysis_record("bill-1", report, result)

        assert record.total_flags == 3
        assert record.potential_savings == 200.0
        assert record.summary == "Analysis complete"
        assert record.detailed_report["validation"]["total_issues"] == 3


class TestDisputes:
    """Tests for dispute letters and emails."""

    async def _context(self) -> DisputeContext:
        bill = _make_bill({"code": "99213", "code_type": "CPT", "total_charge": 150})
        result = _make_engine().run_validation("bill-1", bill)
        report = await generate_analysis_report(
            StubLLM(json.dumps({"summary": "Office visit overcharged by $50."})),
            StructuredBill.model_validate(bill),
            result,
        )
        store = InMemoryLineItemStore()
        await store.save_line_items("bill-1", StructuredBill.model_validate(bill).line_items)
        await persist_flag_annotations("bill-1", result, store)
        return DisputeContext(
            bill_id="bill-1",
            provider_name="City Hospital",
            total_charges=150,
            patient_name="Jamie Rivera",
            analysis=build_analysis_record("bill-1", report, result),
            flagged_items=await store.flagged_line_items("bill-1"),
        )

    @pytest.mark.asyncio
    async def test_dispute_letter(self) -> None:
        context = await self._context()
        llm = StubLLM("  Dear Billing Department,\n...\nSincerely,\n")
        document = await generate_dispute_letter(llm, context)

        assert document.document_type == "dispute_letter"
        assert document.content.startswith("Dear Billing Department")
        assert "City Hospital" in llm.prompts[0]
        assert '"flag_type": "overcharge"' in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_email_template(self) -> None:
        context = await self._context()
        llm = StubLLM("Subject: Billing dispute for account N/A\nBody: Hello,\nPlease review.")
        document = await generate_email_template(llm, context)

        assert document.document_type == "email_template"
        assert document.subject == "Billing dispute for account N/A"
        assert document.content == "Hello,\nPlease review."
        assert "Office visit overcharged by $50." in llm.prompts[0]

    def test_split_email_without_markers(self) -> None:
        assert split_email("Just a body") == (None, "Just a body")


# --- Config and workflow ---


class TestConfig:
    """Tests for the JSON configuration file."""

    def test_sections_load(self) -> None:
        ParseConfig.model_validate(load_config_section("parse", CONFIG_PATH))
        ExtractConfig.model_validate(load_config_section("extract", CONFIG_PATH))
        ReportConfig.model_validate(load_config_section("report", CONFIG_PATH))
        validation = ValidationConfig.model_validate(
            load_config_section("validation", CONFIG_PATH)
        )
        assert validation.overcharge_tolerance_percent == 0
        assert [s.key for s in validation.equivalent_code_sets] == [
            s.key for s in DEFAULT_EQUIVALENT_CODE_SETS
        ]

    def test_missing_file_uses_defaults(self, tmp_path) -> None:
        assert load_config_section("validation", tmp_path / "missing.json") == {}

    def test_validation_config_overrides(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "validation": {
                        "overcharge_tolerance_percent": 15,
                        "benchmark_overrides": {"99213": 80.0},
                    }
                }
            )
        )
        config = load_validation_config(path)
        assert config.overcharge_tolerance_percent == 15
        assert config.benchmark_overrides == {"99213": 80.0}
        assert config.equivalent_code_sets == DEFAULT_EQUIVALENT_CODE_SETS


class TestWorkflow:
    """Tests for the analysis workflow module."""

    def test_workflow_built(self) -> None:
        assert isinstance(workflow, BillAnalysisWorkflow)

    def test_analysis_payload(self) -> None:
        bill = StructuredBill.model_validate(EXTRACTED_BILL)
        result = _make_engine().run_validation("bill-1", bill)
        record = build_analysis_record(
            "bill-1",
            fallback_report(result),
            result,
        )
        payload = _analysis_payload(record, bill, "bill.pdf", "file-1")

        assert payload["bill"]["status"] == "analyzed"
        assert payload["bill"]["total_charges"] == 157.0
        assert payload["bill"]["account_number"] == "A-1001"
        assert payload["data"]["bill_id"] == "bill-1"
        assert payload["file_id"] == "file-1"
