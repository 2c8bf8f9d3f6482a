"""Format ranked search results into prompt-ready text.

Pure functions: no I/O, no store access.
"""

from __future__ import annotations

from typing import List, Sequence

from errormem.models import MemoryContext, SearchResult, SolutionRecord, TaskContext
from errormem.utils.text import _extract_keywords, truncate
from errormem.utils.time import format_timestamp

MESSAGE_CHAR_LIMIT = 500
SUMMARY_MESSAGE_CHAR_LIMIT = 60
SOLUTIONS_PER_ERROR = 3
SUMMARY_MAX_ENTRIES = 5


def _success_emoji(percentage: int) -> str:
    if percentage >= 80:
        return "✅"
    if percentage >= 50:
        return "⚠️"
    return "❌"


def format_success_info(solution: SolutionRecord) -> str:
    total = solution.total_attempts
    if total == 0:
        return "- *Untested solution*"
    percentage = round(solution.success_rate * 100)
    return (
        f"- {_success_emoji(percentage)} **{percentage}% success rate** "
        f"({solution.success_count}/{total} attempts) from {solution.source}"
    )


def format_error_solution(result: SearchResult, index: int) -> str:
    error = result.error
    lines: List[str] = []

    match_info = ""
    if result.match_type == "semantic" and result.similarity:
        match_info = f" ({round(result.similarity * 100)}% similar)"
    lines.append(f"### {index + 1}. {error.error_type}{match_info}")
    lines.append("")

    lines.append("**Error Message:**")
    lines.append("```")
    lines.append(truncate(error.message, MESSAGE_CHAR_LIMIT))
    lines.append("```")
    lines.append("")

    if error.tags:
        lines.append(f"**Tags:** {', '.join(error.tags)}")
        lines.append("")

    if error.occurrence_count > 1:
        lines.append(
            f"**Seen {error.occurrence_count} times** (last: {format_timestamp(error.last_seen_at)})"
        )
        lines.append("")

    if result.solutions:
        ranked = sorted(result.solutions, key=lambda s: s.success_rate, reverse=True)
        lines.append("**Solutions:**")
        lines.append("")
        for solution in ranked[:SOLUTIONS_PER_ERROR]:
            lines.append(format_success_info(solution))
            lines.append("")
            lines.append(solution.content)
            if solution.code_snippet:
                lines.append("")
                lines.append("```")
                lines.append(solution.code_snippet)
                lines.append("```")
            lines.append("")
    else:
        lines.append("*No verified solutions yet.*")
        lines.append("")

    return "\n".join(lines)


def build_memory_prompt(results: Sequence[SearchResult]) -> str:
    """Markdown block listing each result; empty string when there are none."""
    if not results:
        return ""

    lines = [
        "# Relevant Past Errors & Solutions",
        "",
        "The following errors and solutions from past work may be relevant to your current task.",
        "**Review these before proceeding to avoid repeating known issues.**",
        "",
        "---",
        "",
    ]
    for index, result in enumerate(results):
        lines.append(format_error_solution(result, index))
        if index < len(results) - 1:
            lines.append("---")
            lines.append("")
    lines.append("---")
    lines.append("")
    return "\n".join(lines)


def build_memory_context(results: Sequence[SearchResult]) -> MemoryContext:
    return MemoryContext(
        relevant_errors=list(results),
        formatted_prompt=build_memory_prompt(results),
        total_matches=len(results),
    )


def build_memory_summary(results: Sequence[SearchResult]) -> str:
    """Short plain-text overview, at most five entries plus a remainder line."""
    if not results:
        return "No relevant memories found."

    lines = [f"Found {len(results)} relevant error(s):", ""]
    for result in results[:SUMMARY_MAX_ENTRIES]:
        count = len(result.solutions)
        short_message = truncate(result.error.message, SUMMARY_MESSAGE_CHAR_LIMIT)
        lines.append(f"• [{result.error.error_type}] {short_message}")
        if count:
            average = round(sum(s.success_rate for s in result.solutions) / count * 100)
            lines.append(f"  {count} solution(s), avg {average}% success")
        else:
            lines.append(f"  {count} solution(s)")

    if len(results) > SUMMARY_MAX_ENTRIES:
        lines.append(f"  ... and {len(results) - SUMMARY_MAX_ENTRIES} more")
    return "\n".join(lines)


def extract_context_keywords(context: TaskContext) -> List[str]:
    return _extract_keywords(
        [
            context.feature_title,
            context.feature_description,
            context.error_message,
            context.file_path,
        ]
    )
