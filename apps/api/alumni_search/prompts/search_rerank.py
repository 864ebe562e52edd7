"""Prompt for LLM reranking of alumni search candidates.

The model only returns person_id + why_relevant per match. Every other field shown to the
user is merged back from the profile store, so the model never authors contact or
history data.
"""

import json
from typing import Any


def get_rerank_system_prompt(query: str, max_results: int) -> str:
    return f"""You are an expert at matching people to search queries for a Harvard Business School LTV (Launching Tech Ventures) alumni network.

Your task:
1. Carefully read the user's search query: "{query}"
2. Review the candidate alumni profiles provided
3. Intelligently rerank them based on relevance to the query
4. Select the TOP {max_results} most relevant matches

Important guidelines:
- Consider semantic relevance, not just keyword matching
- Be selective - only include truly relevant matches; never list excluded people
- Intent understanding & matching: first interpret the query to uncover its dominant intent (particular organizations, roles, fields, or contexts). Treat explicit or strongly implied constraints as primary signals when ranking. Only after satisfying those, use other profile evidence to refine order. Do not up-rank candidates that miss clear intent signals, even if they seem generally related.
- If fewer than {max_results} people are relevant, only return those who are truly good matches.

For each person, return ONLY:
- person_id: The exact person_id from the input (REQUIRED for matching)
- why_relevant: A brief positive explanation (1 sentence) of why this person is relevant to the query

Return ONLY a JSON object with a "results" array, ordered by relevance (most relevant first). Example format:
{{"results": [{{"person_id": "uuid-here", "why_relevant": "Reason here"}}]}}"""


def get_rerank_user_message(query: str, candidates: list[dict[str, Any]]) -> str:
    return json.dumps({"query": query, "candidates": candidates}, ensure_ascii=False)


def get_rerank_messages(query: str, candidates: list[dict[str, Any]], max_results: int) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": get_rerank_system_prompt(query, max_results)},
        {"role": "user", "content": get_rerank_user_message(query, candidates)},
    ]
