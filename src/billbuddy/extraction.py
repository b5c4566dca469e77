"""Structured-bill extraction from OCR text.

The validation engine only depends on ``StructuredBill``. Any model that can
turn bill text into that shape plugs in as a ``BillExtractor``; there is one
adapter per LLM provider.
"""

import json
import logging
from abc import ABC, abstractmethod
from json import JSONDecodeError

from llama_index.core.llms import LLM
from llama_index.core.prompts import PromptTemplate
from pydantic import ValidationError

from .config import ExtractConfig
from .errors import ExtractionError
from .llm import get_llm, parse_json_response
from .schemas import StructuredBill

logger = logging.getLogger(__name__)

BILL_JSON_SHAPE = json.dumps(
    {
        "patient_info": {"name": "", "dob": "", "account_number": ""},
        "provider": {"name": "", "address": ""},
        "service_date": "",
        "line_items": [
            {
                "description": "",
                "code": "",
                "code_type": "CPT",
                "quantity": 1,
                "unit_price": 0,
                "total_charge": 0,
            }
        ],
        "summary": {"total_charges": 0, "insurance_paid": 0, "patient_responsibility": 0},
    },
    indent=2,
)

EXTRACTION_PROMPT = PromptTemplate(
    """You are a medical billing expert AI. Analyze this medical bill text and extract structured data.

BILL TEXT:
{bill_text}

Extract and return ONLY valid JSON with this exact structure (no markdown, no code blocks, no additional text):
{bill_shape}

Important rules:
- Use "CPT" for procedure codes, "REV" for revenue codes, "NDC" for drug codes, "ICD-10" for diagnosis codes
- All amounts should be numbers without $ or commas
- If a field is not found, use empty string "" or 0 for numbers
- service_date should be YYYY-MM-DD format
- Return ONLY the JSON object, no other text"""
)


class BillExtractor(ABC):
    """Produces a structured bill from raw bill text."""

    @abstractmethod
    async def extract(self, text: str) -> StructuredBill: ...


class LLMBillExtractor(BillExtractor):
    """Extracts a structured bill by prompting a llama-index LLM for JSON."""

    def __init__(self, llm: LLM):
        self.llm = llm

    async def extract(self, text: str) -> StructuredBill:
        prompt = EXTRACTION_PROMPT.format(bill_text=text, bill_shape=BILL_JSON_SHAPE)
        response = await self.llm.acomplete(prompt)
        try:
            data = parse_json_response(str(response))
            bill = StructuredBill.model_validate(data)
        except (ValueError, JSONDecodeError, ValidationError) as exc:
            raise ExtractionError(f"Could not parse structured bill: {exc}") from exc

        logger.info("Extracted %d line items from bill text", len(bill.line_items))
        return bill


class OpenAIBillExtractor(LLMBillExtractor):
    def __init__(
        self,
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ):
        super().__init__(get_llm("openai", model, temperature, max_tokens))


class AnthropicBillExtractor(LLMBillExtractor):
    def __init__(
        self,
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ):
        super().__init__(get_llm("anthropic", model, temperature, max_tokens))


def build_extractor(config: ExtractConfig) -> BillExtractor:
    """Extractor for the configured provider."""
    if config.provider == "anthropic":
        return AnthropicBillExtractor(config.model, config.temperature, config.max_tokens)
    return OpenAIBillExtractor(config.model, config.temperature, config.max_tokens)
