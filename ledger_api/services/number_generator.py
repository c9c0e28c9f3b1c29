"""
Entry reference formatting.

References are built from a template with the tokens {YEAR}, {JOURNAL}
and {NUMBER:0n}. Journal entries use ``ENTRY_REFERENCE_FORMAT``,
e.g. ``2025-BAN-000001``.
"""

import re
from datetime import date as date_type

ENTRY_REFERENCE_FORMAT = "{YEAR}-{JOURNAL}-{NUMBER:06}"


class NumberGenerator:
    """Formats sequential numbers into references."""

    @staticmethod
    def generate(
        format_template: str,
        sequence_number: int,
        journal_code: str,
        period_start: date_type,
    ) -> str:
        """
        Generate a formatted reference.

        Supported tokens:
            {YEAR}        - Year of ``period_start`` (e.g., 2025)
            {JOURNAL}     - Journal code, trimmed and upper-cased
            {NUMBER:06}   - Sequential number zero-padded to 6 digits
        """
        result = format_template
        result = result.replace("{YEAR}", str(period_start.year))
        result = result.replace("{JOURNAL}", journal_code.strip().upper())

        def replace_number(match):
            padding = int(match.group(1))
            return f"{sequence_number:0{padding}d}"

        return re.sub(r'\{NUMBER:(\d+)\}', replace_number, result)


def format_entry_reference(journal_code: str, fiscal_year_start: date_type, sequence_number: int) -> str:
    return NumberGenerator.generate(
        ENTRY_REFERENCE_FORMAT,
        sequence_number,
        journal_code=journal_code,
        period_start=fiscal_year_start,
    )
