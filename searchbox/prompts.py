"""
Prompt text sent to completion backends, and cleanup of what comes back.
"""

from __future__ import annotations

import re

WEB_SEARCH_PREFIX = "Web search:"
RESEARCH_PREFIX = "Research:"

_RESEARCH_INSTRUCTIONS = """
<instructions>
This is a research query. Please provide an in-depth analysis with:
- Comprehensive investigation of the topic
- Multiple perspectives and schools of thought
- Historical context and development
- Current state of research/knowledge
- Limitations and gaps in current understanding
- Citations to notable research or authorities where appropriate
- Structure your response as an academic research summary
</instructions>
"""

_WEB_SEARCH_INSTRUCTIONS = """
<instructions>
You are being provided with search results for the query: "{query}"

{results}

Based on ONLY the search results above:
1. Synthesize a comprehensive summary that captures the key information
2. Structure your response with clear headings and organized content
3. Include specific facts, figures, and quotes from the search results
4. Cite sources using [Source: example.com] format when referencing specific information
5. If the search results don't fully answer the query, acknowledge the limitations
6. Format your response in an easy-to-read style with paragraphs, bullet points, or lists as appropriate

Respond in a helpful, informative manner that directly addresses the user's query.
DO NOT make up information or include details not found in the search results.
DO NOT include phrases like "Based on the search results" or "According to the provided information".
</instructions>
"""

_IDENTITY_PROMPT = """You are an advanced AI assistant. You are {name} created by the company that developed the {alias} model. Please provide a detailed, comprehensive, and helpful response to the following query.

IMPORTANT: Do not identify yourself in every response. Only identify yourself when explicitly asked about your identity or model. Never claim to be based on GPT-4 or any other model architecture you're not based on. Be accurate about your true identity.

User query: {query}"""

_RESPONSE_TAGS = re.compile(r"</?response>")
_HEDGE_PREFIXES = (
    re.compile(r"^Based on the search results,?\s*", re.IGNORECASE),
    re.compile(r"^According to the (provided|search|given) (information|results),?\s*", re.IGNORECASE),
)


def format_search_results(results) -> str:
    """Render results as the delimited block the web-search prompt refers to."""
    if not results:
        return ""
    body = "\n".join(
        f"RESULT {i}:\nTitle: {r.title}\nURL: {r.link}\nSource: {r.source}\nSnippet: {r.snippet}\n"
        for i, r in enumerate(results, start=1)
    )
    return f"\n<search_results>\n{body}\n</search_results>\n"


def web_search_instructions(query: str, results_text: str) -> str:
    return _WEB_SEARCH_INSTRUCTIONS.format(query=query, results=results_text)


def research_instructions() -> str:
    return _RESEARCH_INSTRUCTIONS


def final_prompt(content: str, instructions: str = "") -> str:
    """Closing turn asking the model to answer `content` under `instructions`."""
    query = content[len(WEB_SEARCH_PREFIX):].lstrip() if content.startswith(WEB_SEARCH_PREFIX) else content
    return (
        f"\n{instructions}\n<response>\n"
        f'Respond directly to the query: "{query}"\n\n'
        "Your response should be well-structured, informative, and conversational.\n"
        "</response>"
    )


def clean_response(text: str) -> str:
    """Strip leftover <response> tags and stock hedging openers."""
    cleaned = _RESPONSE_TAGS.sub("", text or "").strip()
    for pattern in _HEDGE_PREFIXES:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def identity_prompt(name: str, alias: str, query: str) -> str:
    """Wrap a query with instructions pinning the model's claimed identity."""
    return _IDENTITY_PROMPT.format(name=name, alias=alias, query=query)
