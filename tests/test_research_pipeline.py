import pytest

import db
from errors import AIGatewayError, NotFoundError, ValidationError
from research_pipeline import (
    build_system_prompt,
    extract_key_findings,
    make_summary,
    make_title,
    process_research_query,
    submit_search,
)


def test_title_keeps_short_queries_whole():
    query = "Latest FDA approvals for cardiovascular drugs"
    assert make_title(query) == "Research Report: " + query


def test_title_at_exactly_fifty_chars_has_no_ellipsis():
    query = "x" * 50
    assert make_title(query) == "Research Report: " + query
    assert not make_title(query).endswith("...")


def test_title_truncates_long_queries():
    query = "Efficacy of GLP-1 receptor agonists in adolescents with type 2 diabetes"
    title = make_title(query)
    assert title == "Research Report: " + query[:50] + "..."
    assert len(title) == len("Research Report: ") + 53


def test_summary_is_first_200_chars_plus_ellipsis():
    content = "a" * 500
    assert make_summary(content) == "a" * 200 + "..."
    assert make_summary("short answer") == "short answer..."


def test_key_findings_filter_short_lines_and_cap_at_five():
    content = "\n".join([
        "tiny",
        "This line is comfortably longer than twenty",
        "",
        "exactly twenty chars",
        "Second finding that is long enough",
        "Third finding that is long enough",
        "Fourth finding that is long enough",
        "Fifth finding that is long enough",
        "Sixth finding that is long enough",
    ])
    findings = extract_key_findings(content)
    assert len(findings) == 5
    assert findings[0] == "This line is comfortably longer than twenty"
    assert "exactly twenty chars" not in findings
    assert "Sixth finding that is long enough" not in findings


def test_system_prompt_lists_sources():
    prompt = build_system_prompt("market_analysis", [
        {"name": "FDA Database", "type": "regulatory"},
        {"name": "ClinicalTrials.gov", "type": "clinical_trial"},
    ])
    assert prompt.startswith("You are a market analysis expert")
    assert prompt.endswith(
        "\n\nAvailable data sources: FDA Database (regulatory), ClinicalTrials.gov (clinical_trial)"
    )


def test_system_prompt_without_sources_or_known_category():
    assert "Available data sources" not in build_system_prompt("journal_summary", [])
    assert build_system_prompt("unknown_category") == ""


def test_ad_hoc_query_is_not_persisted(gateway):
    result = process_research_query(None, "Summarize this discharge letter please", "medical_report", None)

    assert result["success"] is True
    assert result["report_id"] is None
    assert result["summary"] == gateway.content[:200] + "..."
    assert gateway.calls[0]["user_prompt"] == "Summarize this discharge letter please"


def test_missing_query_raises_not_found():
    with pytest.raises(NotFoundError, match="Search query not found"):
        process_research_query("does-not-exist", "Any query text", "web_search", [])


def test_gateway_failure_leaves_query_processing(gateway):
    gateway.error = AIGatewayError("AI Gateway error: 503")
    user = db.create_user("someone@example.com", "hash")
    query = db.create_search_query(user["id"], "Oncology pipeline review", "market_analysis", [])

    with pytest.raises(AIGatewayError):
        process_research_query(query["id"], query["query_text"], "market_analysis", [])

    assert db.get_search_query(query["id"])["status"] == "processing"
    assert db.list_reports(user["id"]) == []


def test_submit_search_rejects_blank_query(gateway):
    user = db.create_user("someone@example.com", "hash")
    with pytest.raises(ValidationError, match="Please enter a query"):
        submit_search(user, "   ", "web_search")
    assert gateway.calls == []
    assert db.list_search_queries(user["id"]) == []


def test_submit_search_uses_only_active_sources(gateway):
    user = db.create_user("someone@example.com", "hash")
    source = db.create_data_source(user["id"], "PubMed", "journal", None, "Biomedical literature")

    result = submit_search(user, "Statin adherence in elderly patients", "journal_summary")

    query = db.get_search_query(result["query_id"])
    assert query["selected_sources"] == [source["id"]]
    assert query["status"] == "completed"
    assert "PubMed (journal)" in gateway.calls[0]["system_prompt"]

    report = db.get_report(user["id"], result["report_id"])
    assert report["full_content"]["sources_used"] == [{"name": "PubMed", "type": "journal"}]
    assert report["full_content"]["ai_response"] == gateway.content
    assert report["full_content"]["search_type"] == "journal_summary"
