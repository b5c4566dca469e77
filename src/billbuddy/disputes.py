"""Dispute letters and emails for flagged bills."""

import json
import logging
import re

from llama_index.core.llms import LLM
from llama_index.core.prompts import PromptTemplate
from pydantic import BaseModel

from .persistence import StoredLineItem
from .schemas import BillAnalysisRecord, DisputeDocument

logger = logging.getLogger(__name__)

LETTER_PROMPT = PromptTemplate(
    """You are a professional patient advocate helping write a formal dispute letter to a hospital billing department.

BILL INFORMATION:
- Provider: {provider}
- Service Date: {service_date}
- Total Charges: ${total_charges}
- Account Number: {account_number}

PATIENT INFORMATION:
- Name: {patient_name}
- Email: {patient_email}

BILLING ISSUES FOUND:
{detailed_report}

FLAGGED CHARGES:
{flagged_items}

Write a professional, formal dispute letter that:
1. Is addressed properly to the billing department
2. Clearly states the purpose (disputing incorrect charges)
3. Lists specific line items with issues
4. References relevant billing regulations and patient rights
5. Requests itemized review and correction within 30 days
6. Maintains a firm but professional tone
7. Includes placeholder for patient signature and date

Format as a complete letter ready to print and send.
Use proper business letter format.
Do NOT use markdown formatting - use plain text only."""
)

EMAIL_PROMPT = PromptTemplate(
    """Create a professional but concise email to dispute medical billing errors.

BILL INFO:
- Provider: {provider}
- Service Date: {service_date}
- Total: ${total_charges}
- Account: {account_number}

ISSUES:
{summary}

Write a professional email (subject line + body) that:
1. States the purpose clearly
2. Lists key issues briefly
3. Requests review and correction
4. Is polite but firm
5. Is suitable for email (not too long)

Format with:
Subject: [subject line here]
Body: [email content]"""
)

_SUBJECT = re.compile(r"^\s*subject:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_BODY = re.compile(r"^\s*body:\s*", re.IGNORECASE | re.MULTILINE)


class DisputeContext(BaseModel):
    """Everything a dispute document is written from."""

    bill_id: str
    provider_name: str | None = None
    service_date: str | None = None
    total_charges: float = 0.0
    account_number: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None
    analysis: BillAnalysisRecord
    flagged_items: list[StoredLineItem] = []


def _bill_fields(context: DisputeContext) -> dict[str, str]:
    return {
        "provider": context.provider_name or "Medical Provider",
        "service_date": context.service_date or "N/A",
        "total_charges": f"{context.total_charges:,.2f}",
        "account_number": context.account_number or "N/A",
    }


async def generate_dispute_letter(llm: LLM, context: DisputeContext) -> DisputeDocument:
    """Formal plain-text letter disputing the flagged charges."""
    prompt = LETTER_PROMPT.format(
        **_bill_fields(context),
        patient_name=context.patient_name or "Patient",
        patient_email=context.patient_email or "N/A",
        detailed_report=json.dumps(context.analysis.detailed_report, indent=2),
        flagged_items=json.dumps(
            [item.model_dump(mode="json") for item in context.flagged_items], indent=2
        ),
    )
    response = await llm.acomplete(prompt)
    logger.info("Generated dispute letter for bill %s", context.bill_id)
    return DisputeDocument(
        bill_id=context.bill_id,
        document_type="dispute_letter",
        content=str(response).strip(),
    )


def split_email(text: str) -> tuple[str | None, str]:
    """Split a ``Subject:``/``Body:`` reply into subject and body."""
    subject_match = _SUBJECT.search(text)
    subject = subject_match.group(1).strip() if subject_match else None

    body_match = _BODY.search(text)
    if body_match:
        body = text[body_match.end() :]
    elif subject_match:
        body = text[subject_match.end() :]
    else:
        body = text
    return subject, body.strip()


async def generate_email_template(llm: LLM, context: DisputeContext) -> DisputeDocument:
    """Short dispute email built from the analysis summary."""
    prompt = EMAIL_PROMPT.format(
        **_bill_fields(context), summary=context.analysis.summary
    )
    response = await llm.acomplete(prompt)
    subject, body = split_email(str(response))
    logger.info("Generated dispute email for bill %s", context.bill_id)
    return DisputeDocument(
        bill_id=context.bill_id,
        document_type="email_template",
        content=body,
        subject=subject,
    )
