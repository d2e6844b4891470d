"""HTML rendering of report documents using Jinja2 templates."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from seoreport.models import ReportDocument

TEMPLATE_DIR = Path(__file__).parent / "templates"


class ReportPresenter:
    """Renders a ReportDocument as a standalone HTML page."""

    def __init__(self, template_dir: Optional[Path] = None):
        """Initialize the presenter.

        Args:
            template_dir: Directory containing Jinja2 templates
        """
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )
        self.env.filters["format_number"] = self._format_number
        self.env.filters["format_money"] = self._format_money
        self.env.filters["format_date"] = self._format_date

    def _format_number(self, value):
        """Format number with thousand separators."""
        if value is None:
            return "0"
        try:
            return "{:,}".format(int(value))
        except (ValueError, TypeError):
            return value

    def _format_money(self, value, decimals: int = 0):
        try:
            return "${:,.{}f}".format(float(value or 0), decimals)
        except (ValueError, TypeError):
            return value

    def _format_date(self, value):
        try:
            return datetime.fromisoformat(value).strftime("%B %d, %Y")
        except (ValueError, TypeError):
            return value

    def render(self, document: ReportDocument) -> str:
        """Render the document; absent sections produce no markup at all."""
        template = self.env.get_template("report.html")
        return template.render(report=document, has_data=document.has_data())


# Singleton instance
_presenter: Optional[ReportPresenter] = None


def get_presenter() -> ReportPresenter:
    """Get the presenter singleton."""
    global _presenter
    if _presenter is None:
        _presenter = ReportPresenter()
    return _presenter
