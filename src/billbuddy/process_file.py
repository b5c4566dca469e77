"""Medical bill analysis workflow.

A pipeline that:
1. Parses the uploaded bill (image or PDF) to text using LlamaParse OCR
2. Extracts a structured bill with an LLM
3. Validates line items: duplicates, invalid codes, overcharges vs benchmark
4. Writes overcharge flags back onto the stored line items
5. Writes a patient-friendly report and stores the analysis record
"""

import logging
from typing import Annotated, Literal

from llama_cloud import AsyncLlamaCloud
from llama_cloud.types.file_query_params import Filter
from pydantic import BaseModel
from workflows import Context, Workflow, step
from workflows.events import Event, StartEvent, StopEvent
from workflows.resource import Resource, ResourceConfig

from .clients import agent_name, get_llama_cloud_client
from .config import (
    ANALYSIS_COLLECTION,
    CONFIG_FILE,
    ExtractConfig,
    ParseConfig,
    ReportConfig,
    ValidationConfig,
)
from .extraction import build_extractor
from .llm import get_llm
from .persistence import InMemoryLineItemStore, get_line_item_store, persist_flag_annotations
from .reporting import build_analysis_record, generate_analysis_report
from .schemas import BillAnalysisRecord, StructuredBill, ValidationResult
from .validators import ValidationEngine

logger = logging.getLogger(__name__)

PIPELINE_TIMEOUT_SECONDS = 60


# --- Events ---


class BillStartEvent(StartEvent):
    """Start event naming the bill and its uploaded file."""

    bill_id: str
    file_id: str


class StatusEvent(Event):
    """Progress status update for the client."""

    message: str
    level: Literal["info", "warning", "error"] = "info"


class BillParsedEvent(Event):
    """Emitted after OCR text is available."""

    pass


class BillExtractedEvent(Event):
    """Emitted after the structured bill is extracted and its line items stored."""

    pass


class ValidationCompleteEvent(Event):
    """Emitted after validation and flag write-through."""

    pass


# --- Workflow State ---


class WorkflowState(BaseModel):
    """State persisted across workflow steps."""

    bill_id: str = ""
    file_id: str = ""
    filename: str = ""
    text: str = ""
    bill: StructuredBill | None = None
    validation: ValidationResult | None = None


# --- Workflow ---


class BillAnalysisWorkflow(Workflow):
    """Audit a medical bill for duplicates, invalid codes and overcharges."""

    @step()
    async def parse_bill(
        self,
        event: BillStartEvent,
        ctx: Context[WorkflowState],
        llama_cloud: Annotated[AsyncLlamaCloud, Resource(get_llama_cloud_client)],
        parse_config: Annotated[
            ParseConfig,
            ResourceConfig(
                config_file=CONFIG_FILE,
                path_selector="parse",
                label="Parse Settings",
                description="Configuration for OCR of uploaded bills",
            ),
        ],
    ) -> BillParsedEvent:
        """OCR the uploaded bill into text."""
        files = await llama_cloud.files.query(filter=Filter(file_ids=[event.file_id]))
        filename = files.items[0].name if files.items else event.file_id

        ctx.write_event_to_stream(StatusEvent(message=f"Reading {filename}..."))

        parse_job = await llama_cloud.parsing.create(
            tier=parse_config.settings.tier,
            version=parse_config.settings.version,
            file_id=event.file_id,
        )
        await llama_cloud.parsing.wait_for_completion(parse_job.id)
        result = await llama_cloud.parsing.get(parse_job.id, expand=["markdown"])

        text = ""
        if result.markdown:
            for page in result.markdown.pages:
                if getattr(page, "markdown", None):
                    text += page.markdown + "\n\n"

        async with ctx.store.edit_state() as state:
            state.bill_id = event.bill_id
            state.file_id = event.file_id
            state.filename = filename
            state.text = text

        return BillParsedEvent()

    @step()
    async def extract_bill(
        self,
        event: BillParsedEvent,
        ctx: Context[WorkflowState],
        line_items: Annotated[InMemoryLineItemStore, Resource(get_line_item_store)],
        extract_config: Annotated[
            ExtractConfig,
            ResourceConfig(
                config_file=CONFIG_FILE,
                path_selector="extract",
                label="Extraction Model",
                description="LLM provider used to structure bill text",
            ),
        ],
    ) -> BillExtractedEvent:
        """Turn OCR text into a structured bill and store its line items."""
        state = await ctx.store.get_state()

        ctx.write_event_to_stream(StatusEvent(message="Extracting line items..."))

        extractor = build_extractor(extract_config)
        bill = await extractor.extract(state.text)
        await line_items.save_line_items(state.bill_id, bill.line_items)

        async with ctx.store.edit_state() as state:
            state.bill = bill

        ctx.write_event_to_stream(
            StatusEvent(message=f"Found {len(bill.line_items)} line items")
        )
        return BillExtractedEvent()

    @step()
    async def validate_bill(
        self,
        event: BillExtractedEvent,
        ctx: Context[WorkflowState],
        line_items: Annotated[InMemoryLineItemStore, Resource(get_line_item_store)],
        validation_config: Annotated[
            ValidationConfig,
            ResourceConfig(
                config_file=CONFIG_FILE,
                path_selector="validation",
                label="Validation Policy",
                description="Overcharge tolerance, benchmark overrides and equivalent codes",
            ),
        ],
    ) -> ValidationCompleteEvent:
        """Run the deterministic checks, then write flags back to line items."""
        state = await ctx.store.get_state()

        ctx.write_event_to_stream(StatusEvent(message="Running validation checks..."))

        engine = ValidationEngine.from_config(validation_config)
        result = engine.run_validation(state.bill_id, state.bill or StructuredBill())
        await persist_flag_annotations(state.bill_id, result, line_items)

        async with ctx.store.edit_state() as state:
            state.validation = result

        if result.total_issues:
            ctx.write_event_to_stream(
                StatusEvent(
                    message=f"Found {result.total_issues} issues, "
                    f"${result.potential_savings:,.2f} in potential savings",
                    level="warning",
                )
            )
        else:
            ctx.write_event_to_stream(StatusEvent(message="No billing issues found"))

        return ValidationCompleteEvent()

    @step()
    async def summarize(
        self,
        event: ValidationCompleteEvent,
        ctx: Context[WorkflowState],
        llama_cloud: Annotated[AsyncLlamaCloud, Resource(get_llama_cloud_client)],
        report_config: Annotated[
            ReportConfig,
            ResourceConfig(
                config_file=CONFIG_FILE,
                path_selector="report",
                label="Report Model",
                description="LLM provider used for the patient report",
            ),
        ],
    ) -> StopEvent:
        """Write the patient report and store the analysis record."""
        state = await ctx.store.get_state()

        ctx.write_event_to_stream(StatusEvent(message="Generating report..."))

        llm = get_llm(
            report_config.provider, report_config.model, report_config.temperature
        )
        bill = state.bill or StructuredBill()
        result = state.validation or ValidationResult(bill_id=state.bill_id)
        report = await generate_analysis_report(llm, bill, result)
        record = build_analysis_record(state.bill_id, report, result)

        await llama_cloud.beta.agent_data.agent_data(
            data=_analysis_payload(record, bill, state.filename, state.file_id),
            deployment_name=agent_name or "_public",
            collection=ANALYSIS_COLLECTION,
        )

        ctx.write_event_to_stream(StatusEvent(message="Analysis complete"))

        return StopEvent(result=record.model_dump(mode="json"))


# --- Helper Functions ---


def _analysis_payload(
    record: BillAnalysisRecord, bill: StructuredBill, filename: str, file_id: str
) -> dict:
    """Analysis record plus the bill fields shown on the bill list."""
    return {
        "data": record.model_dump(mode="json"),
        "bill": {
            "status": "analyzed",
            "total_charges": bill.summary.total_charges,
            "patient_name": bill.patient_info.name,
            "service_date": bill.service_date,
            "provider_name": bill.provider.name,
            "account_number": bill.patient_info.account_number,
        },
        "file_name": filename,
        "file_id": file_id,
    }


workflow = BillAnalysisWorkflow(timeout=PIPELINE_TIMEOUT_SECONDS)
