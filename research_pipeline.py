from loguru import logger

import db
from errors import NotFoundError, ValidationError
from llm_gateway import chat_completion
from schemas import SearchType

TITLE_PREFIX = "Research Report: "
TITLE_LENGTH = 50
SUMMARY_LENGTH = 200
FINDING_MIN_LENGTH = 20
MAX_FINDINGS = 5

SYSTEM_PROMPTS = {
    SearchType.WEB_SEARCH.value: """You are a research assistant specializing in regulatory and clinical trial information.
Analyze the user's query and provide comprehensive findings from regulatory websites and clinical trial databases.
Format your response with clear structure: title, summary, and key findings.""",

    SearchType.MARKET_ANALYSIS.value: """You are a market analysis expert specializing in pharmaceutical and medical device markets.
Analyze trends, competitive landscape, and market opportunities based on the user's query.
Provide actionable insights with data-driven conclusions.""",

    SearchType.JOURNAL_SUMMARY.value: """You are a scientific literature analyst specializing in medical and pharmaceutical research.
Summarize key findings, methodologies, and conclusions from relevant scientific journals.
Highlight clinical significance and implications for practice.""",

    SearchType.MEDICAL_REPORT.value: """You are a clinical documentation assistant.
Summarize the medical report provided by the user in plain language.
List the most important findings, diagnoses and recommended follow-ups, one per line.""",
}


def build_system_prompt(search_type, sources=None):
    """Per-category instruction plus the comma-joined list of connected sources."""
    prompt = SYSTEM_PROMPTS.get(search_type, "")
    if sources:
        listed = ", ".join(f"{s.get('name')} ({s.get('type')})" for s in sources)
        prompt += f"\n\nAvailable data sources: {listed}"
    return prompt


def make_title(query_text: str) -> str:
    truncated = query_text[:TITLE_LENGTH]
    if len(query_text) > TITLE_LENGTH:
        truncated += "..."
    return TITLE_PREFIX + truncated


def make_summary(ai_content: str) -> str:
    return ai_content[:SUMMARY_LENGTH] + "..."


def extract_key_findings(ai_content: str) -> list:
    """Lines of the model output longer than 20 characters, first five only."""
    findings = [line for line in ai_content.split("\n") if len(line.strip()) > FINDING_MIN_LENGTH]
    return findings[:MAX_FINDINGS]


def process_research_query(query_id, query_text, search_type, sources=None):
    """
    Run one research query through the AI gateway and persist the report.

    A null query_id is an ad-hoc request (the scanner): nothing is written and
    report_id comes back as None.
    """
    sources = sources or []
    logger.info(f"Processing research query: id={query_id} type={search_type} sources={len(sources)}")

    ai_content = chat_completion(build_system_prompt(search_type, sources), query_text)
    logger.info("AI response received, generating report...")

    title = make_title(query_text)
    summary = make_summary(ai_content)
    key_findings = extract_key_findings(ai_content)

    report_id = None
    if query_id is not None:
        db.mark_query_completed(query_id)

        search_query = db.get_search_query(query_id)
        if search_query is None:
            raise NotFoundError("Search query not found")

        report = db.create_report(
            user_id=search_query["user_id"],
            query_id=query_id,
            title=title,
            summary=summary,
            full_content={
                "ai_response": ai_content,
                "key_findings": key_findings,
                "search_type": search_type,
                "sources_used": [{"name": s.get("name"), "type": s.get("type")} for s in sources],
            },
        )
        report_id = report["id"]

    return {
        "success": True,
        "title": title,
        "summary": summary,
        "key_findings": key_findings,
        "report_id": report_id,
    }


def submit_search(user, query_text, search_type):
    """
    Search view submission: record the query as processing, run it against the
    user's active data sources and return the generated report fields.
    """
    if not query_text or not query_text.strip():
        raise ValidationError("Please enter a query")

    sources = db.list_data_sources(user["id"], active_only=True)
    search_query = db.create_search_query(
        user_id=user["id"],
        query_text=query_text,
        search_type=search_type,
        selected_sources=[s["id"] for s in sources],
    )

    result = process_research_query(
        query_id=search_query["id"],
        query_text=query_text,
        search_type=search_type,
        sources=sources,
    )
    result["query_id"] = search_query["id"]
    return result
