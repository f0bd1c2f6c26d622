"""
Request models and enums shared by the API and the db layer
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class SearchType(str, Enum):
    WEB_SEARCH = "web_search"
    MARKET_ANALYSIS = "market_analysis"
    JOURNAL_SUMMARY = "journal_summary"
    MEDICAL_REPORT = "medical_report"


# Categories a user can pick in the Search view
USER_SEARCH_TYPES = (SearchType.WEB_SEARCH, SearchType.MARKET_ANALYSIS, SearchType.JOURNAL_SUMMARY)


class SourceType(str, Enum):
    REGULATORY = "regulatory"
    CLINICAL_TRIAL = "clinical_trial"
    JOURNAL = "journal"
    DATABASE = "database"


class QueryStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"


class Credentials(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)


class DataSourceCreate(BaseModel):
    name: str
    type: SourceType = SourceType.REGULATORY
    url: Optional[str] = None
    description: str = ""

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Source name is required")
        return v.strip()

    @field_validator("url")
    @classmethod
    def blank_url_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class SearchRequest(BaseModel):
    query_text: str
    search_type: SearchType = SearchType.WEB_SEARCH


class ResearchQueryRequest(BaseModel):
    """Body of POST /api/process-research-query."""
    query_id: Optional[str] = None
    query_text: str
    search_type: str = SearchType.WEB_SEARCH.value
    sources: Optional[List[Dict[str, Any]]] = None


class ScanTextRequest(BaseModel):
    text: str = ""
