"""Console rendering of studio output and the final summary."""

from __future__ import annotations

from rich.text import Text

from studio_runner.session.models import LogEvent, OutputLevel, RunOutcome

_LEVEL_STYLES: dict[OutputLevel, str] = {
    OutputLevel.PRINT: "",
    OutputLevel.INFO: "cyan",
    OutputLevel.WARNING: "yellow",
    OutputLevel.ERROR: "red",
}


def render_event(event: LogEvent) -> Text:
    return Text(event.body, style=_LEVEL_STYLES[event.level])


def render_summary(outcome: RunOutcome) -> Text:
    """``N errors, N warnings, and N prints.`` with counts coloured by severity."""

    summary = Text()
    summary.append_text(_count(outcome.error_count, "error", "bright_red"))
    summary.append(", ")
    summary.append_text(_count(outcome.warning_count, "warning", "bright_yellow"))
    summary.append(", and ")
    summary.append_text(_count(outcome.print_count, "print", "bright_white"))
    summary.append(".")
    return summary


def _count(value: int, noun: str, nonzero_style: str) -> Text:
    text = Text()
    text.append(str(value), style="bright_green" if value == 0 else nonzero_style)
    text.append(f" {noun}" if value == 1 else f" {noun}s")
    return text
