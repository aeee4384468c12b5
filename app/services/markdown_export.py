"""Markdown rendering of an AnalysisResult."""

from datetime import date
from typing import List, Optional

from app.models.analysis import AnalysisResult

DEFAULT_EXPORT_FILENAME = "exam-priority-list.md"


def export_markdown(result: AnalysisResult, generated_on: Optional[date] = None) -> str:
    """Render ``result`` as a markdown priority list.

    Topics are listed by confidence, highest first. The output depends only
    on ``result`` and ``generated_on`` (today when omitted).
    """
    generated_on = generated_on or date.today()
    lines: List[str] = [
        "# Exam Priority List",
        "",
        f"*Generated on {generated_on.isoformat()}*",
        "",
    ]

    summary = result.summary
    if summary is not None:
        lines.extend([
            "## Summary",
            "",
            f"- **Total Topics:** {summary.total_topics}",
            f"- **High Priority Topics:** {summary.high_priority_count}",
            f"- **Low Effort, High Reward Topics:** {summary.low_effort_high_reward}",
            "",
        ])

    lines.extend(["## Priority List", ""])

    for index, topic in enumerate(result.sorted_topics(), start=1):
        lines.append(f"### {index}. {topic.name}")
        lines.append("")
        lines.append(f"- **Confidence Score:** {topic.confidence}%")
        lines.append(f"- **Effort Level:** {topic.effort}")
        lines.append(f"- **Reward Level:** {topic.reward}")
        lines.append(f"- **Frequency:** {topic.frequency} times")
        lines.append(f"- **Priority:** {topic.resolved_priority}")
        if topic.key_concepts:
            lines.append(f"- **Key Concepts:** {', '.join(topic.key_concepts)}")
        if topic.is_quick_win:
            lines.append("- ⭐ **Low Effort, High Reward Topic**")
        lines.append("")

    return "\n".join(lines)
