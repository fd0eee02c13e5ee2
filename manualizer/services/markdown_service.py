"""
Markdown rendering of a manual.
"""
from typing import List

from manualizer.models.domain import BindingState, Manual


def render_markdown(manual: Manual) -> str:
    """
    Render a manual as Markdown.

    Layout:
        # <title>

        ## 1. <headline>

        ![Step 1](<frame url>)

        <description>

    Steps without a bound frame are rendered without an image line.
    """
    lines: List[str] = [f"# {manual.title}", ""]

    for number, step in enumerate(manual.steps, start=1):
        lines.append(f"## {number}. {step.headline}".rstrip())
        lines.append("")
        if step.binding == BindingState.BOUND and step.bound_frame:
            lines.append(f"![Step {number}]({step.bound_frame})")
            lines.append("")
        if step.description:
            lines.append(step.description)
            lines.append("")

    return "\n".join(lines).rstrip() + "\n"
