"""Pydantic models shared across the pipeline and the HTTP surface."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    count = "count"
    filter = "filter"
    content = "content"
    analysis = "analysis"


class Backend(str, Enum):
    txql = "txql"
    aivoice = "aivoice"


class RouteKind(str, Enum):
    greeting = "greeting"
    direction = "direction"
    license_key_scoped = "licenseKeyScoped"
    backend = "backend"


class DateRange(BaseModel):
    """Both ends are ISO ``YYYY-MM-DD`` strings; never partially populated."""
    start_date: str
    end_date: str


class Comparison(BaseModel):
    op: str  # '>' or '<'
    value: float


class ExtractedEntities(BaseModel):
    patient_number: Optional[int] = None
    patient_name: Optional[str] = None
    date_range: Optional[DateRange] = None
    date_context: Optional[str] = None
    license_key: Optional[str] = None
    state: Optional[str] = None
    is_active_only: Optional[bool] = None
    include_deleted: bool = False
    result_limit: Optional[int] = None
    needs_auto_limit: bool = True
    duration_filter: Optional[Comparison] = None
    cost_filter: Optional[Comparison] = None
    table_hint: Optional[str] = None


class CallEntities(BaseModel):
    """Call-record filters pulled from an AI-Voice question."""
    appointment_status: Optional[str] = None
    call_success: Optional[bool] = None
    sentiment: Optional[str] = None
    quality: Optional[str] = None
    has_upsell: Optional[bool] = None
    needs_followup: Optional[bool] = None
    language: Optional[str] = None
    duration: Optional[Comparison] = None
    cost: Optional[Comparison] = None
    name: Optional[str] = None


class RouteDecision(BaseModel):
    kind: RouteKind
    backend: Optional[Backend] = None
    query: str
    license_key: Optional[str] = None


class QueryResult(BaseModel):
    success: bool
    rows: Optional[List[Any]] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    response_data: Any = None


class FormattedResponse(BaseModel):
    text: str
    chart: Optional[Dict[str, Any]] = None


class AgentResult(BaseModel):
    success: bool = True
    system: str
    answer: Optional[str] = None
    chart: Optional[Dict[str, Any]] = None
    sql_query: Optional[str] = None
    execution_results: Optional[QueryResult] = None
    error: Optional[str] = None
    friendly_error: Optional[str] = None
    date_range: Optional[DateRange] = None
    license_key: Optional[str] = None
    # System-specific payload returned verbatim to the client
    extra: Dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = None
    user_id: str = Field("anonymous", alias="userId")


class TxqlChatRequest(ChatRequest):
    max_retries: Optional[int] = Field(None, alias="maxRetries")


class LicenseKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    license_key: Optional[str] = Field(None, alias="licenseKey")


class CommLogRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pat_num: Optional[int] = Field(None, alias="patNum")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")


class SessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field("anonymous", alias="userId")
