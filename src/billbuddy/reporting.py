"""Patient-facing analysis report for a validated bill."""

import json
import logging

from llama_index.core.llms import LLM
from llama_index.core.prompts import PromptTemplate
from pydantic import ValidationError

from .llm import parse_json_response
from .schemas import (
    AnalysisReport,
    BillAnalysisRecord,
    FlagSeverity,
    StructuredBill,
    ValidationResult,
)

logger = logging.getLogger(__name__)

REPORT_JSON_SHAPE = json.dumps(
    {
        "summary": "Brief 2-3 sentence summary of findings",
        "detailed_findings": [
            {
                "issue": "Issue description",
                "impact": "What this means for the patient",
                "recommendation": "What to do about it",
            }
        ],
        "recommendations": ["Action item 1", "Action item 2"],
        "severity": "low|medium|high",
    },
    indent=2,
)

REPORT_PROMPT = PromptTemplate(
    """You are a patient advocate AI analyzing a medical bill for potential billing errors.

BILL SUMMARY:
{bill_json}

VALIDATION FLAGS FOUND:
{validation_json}

Provide a patient-friendly analysis as JSON:
{report_shape}

Be specific with dollar amounts and codes. Return ONLY the JSON, no markdown or extra text."""
)


def overall_severity(result: ValidationResult) -> str:
    """Worst severity among the flags, or low when there are none."""
    severities = {flag.severity for flag in result.flags}
    for severity in (FlagSeverity.HIGH, FlagSeverity.MEDIUM):
        if severity in severities:
            return severity.value
    return FlagSeverity.LOW.value


def fallback_report(result: ValidationResult) -> AnalysisReport:
    """Report built from the flags alone, used when the model reply is unusable."""
    if result.total_issues:
        summary = (
            f"We found {result.total_issues} potential billing issue(s) with "
            f"${result.potential_savings:,.2f} in potential savings."
        )
    else:
        summary = "No billing issues were found on this bill."
    return AnalysisReport(
        summary=summary,
        recommendations=[flag.message for flag in result.flags],
        severity=overall_severity(result),
    )


async def generate_analysis_report(
    llm: LLM, bill: StructuredBill, result: ValidationResult
) -> AnalysisReport:
    """Ask the LLM to explain the findings.

    Counts and savings always come from the validation result, not the model.
    """
    response = await llm.acomplete(
        REPORT_PROMPT.format(
            bill_json=json.dumps(bill.model_dump(mode="json"), indent=2),
            validation_json=json.dumps(
                result.model_dump(mode="json", exclude={"bill_id"}), indent=2
            ),
            report_shape=REPORT_JSON_SHAPE,
        )
    )
    try:
        report = AnalysisReport.model_validate(parse_json_response(str(response)))
    except (ValueError, ValidationError):
        logger.warning(
            "Unusable analysis report for bill %s, using fallback", result.bill_id,
            exc_info=True,
        )
        report = fallback_report(result)

    return report.model_copy(
        update={
            "total_flags": result.total_issues,
            "potential_savings": result.potential_savings,
            "severity": report.severity if result.flags else "low",
        }
    )


def build_analysis_record(
    bill_id: str, report: AnalysisReport, result: ValidationResult
) -> BillAnalysisRecord:
    """Analysis row for storage, with the validation result attached."""
    detailed_report = report.model_dump(mode="json")
    detailed_report["validation"] = result.model_dump(mode="json")
    return BillAnalysisRecord(
        bill_id=bill_id,
        total_flags=report.total_flags,
        potential_savings=report.potential_savings,
        summary=report.summary or "Analysis complete",
        detailed_report=detailed_report,
        recommendations=report.recommendations,
    )
