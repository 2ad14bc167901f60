"""
Inline text rendering of command results for the editor's assistant panel.
"""

import json
import math
from typing import Any, Optional

from browserbridge.core.types import CommandResult, Degraded, Failed

_AUDIT_TYPES = {
    "accessibility-audit": "Accessibility",
    "performance-audit": "Performance",
    "seo-audit": "SEO",
    "best-practices-audit": "Best Practices",
    "nextjs-audit": "NextJS",
}


def _pretty(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _str_field(data: Any, key: str, default: str = "") -> str:
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, str):
            return value
    return default


def format_screenshot(data: Any) -> str:
    if _str_field(data, "message"):
        return "Successfully saved screenshot"
    return f"Screenshot captured: {_pretty(data)}"


def format_console_logs(data: Any) -> str:
    if not isinstance(data, list):
        return f"Console logs: {_pretty(data)}"
    lines = [
        f"[{_str_field(log, 'level', 'info').upper()}] {_str_field(log, 'message')}"
        for log in data
    ]
    if not lines:
        return "No console logs found."
    return "Console Logs:\n\n" + "\n".join(lines)


def format_selected_element(data: Any) -> str:
    element = data.get("element") if isinstance(data, dict) else None
    if not isinstance(element, dict):
        return "No DOM element selected. Click on an element in the browser to select it."

    info = f"Selected DOM Element:\n- Tag: {_str_field(element, 'tagName', 'unknown')}"
    element_id = _str_field(element, "id")
    if element_id:
        info += f"\n- ID: {element_id}"
    class_name = _str_field(element, "className")
    if class_name:
        info += f"\n- Classes: {class_name}"
    text = _str_field(element, "innerText")
    if text:
        info += f"\n- Text: {text}"
    html = element.get("outerHTML")
    if isinstance(html, str):
        info += f"\n\nHTML:\n{html}"
    return info


def format_audit(route: str, data: Any) -> str:
    audit_type = _AUDIT_TYPES.get(route, "Unknown")

    score = ""
    raw_score = data.get("score") if isinstance(data, dict) else None
    if isinstance(raw_score, (int, float)) and not isinstance(raw_score, bool):
        score = f"Overall Score: {math.floor(raw_score * 100 + 0.5)}%\n"

    issues = ""
    raw_issues = data.get("issues") if isinstance(data, dict) else None
    if isinstance(raw_issues, list):
        if not raw_issues:
            issues = "\nNo issues found!"
        else:
            issues = "\nIssues Found:\n"
            for i, issue in enumerate(raw_issues, 1):
                issues += f"\n{i}. {_str_field(issue, 'title', 'Unknown issue')}\n"
                description = _str_field(issue, "description")
                if description:
                    issues += f"   {description}\n"

    if score or issues:
        return f"{audit_type} Audit Results:\n\n{score}{issues}"
    return f"{audit_type} Audit Results:\n\n{_pretty(data)}"


def format_payload(route: Optional[str], data: Any) -> str:
    """Render a successful payload according to the sub-resource it came from."""
    if route == "capture-screenshot":
        return format_screenshot(data)
    if route in ("console-logs", "console-errors"):
        return format_console_logs(data)
    if route in ("network-success", "network-errors"):
        return f"Network logs:\n\n{_pretty(data)}"
    if route == "wipelogs":
        return _str_field(data, "message") or "Browser logs cleared successfully."
    if route == "selected-element":
        return format_selected_element(data)
    if route in _AUDIT_TYPES:
        return format_audit(route, data)
    if route == "audit-all":
        return f"Audit Mode Results:\n\n{_pretty(data)}"
    if route == "debug-mode":
        return f"Debugger Mode Results:\n\n{_pretty(data)}"
    return _pretty(data)


def render_result(result: CommandResult) -> str:
    if isinstance(result, Failed):
        text = f"Error ({result.kind.value}): {result.message}"
        if result.hint:
            text += f"\n{result.hint}"
        return text

    text = format_payload(result.route, result.payload)
    if isinstance(result, Degraded) and result.warnings:
        text += "\n\nWarnings:\n" + "\n".join(f"- {w}" for w in result.warnings)
    return text


def section_label(result: CommandResult) -> str:
    return result.label or "Browser Tools"
