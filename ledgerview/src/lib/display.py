"""Display helpers shared by snapshot rows and the runner."""


def format_amount(amount: int) -> str:
    """Format a whole-unit amount as US dollars without fraction digits.

    Args:
        amount: Whole-unit amount.

    Returns:
        Formatted string such as "$12,345".
    """
    return f"${amount:,}"


def incoming_label(count: int) -> str | None:
    """Label for the "new transactions" affordance, or None when hidden."""
    if count <= 0:
        return None
    noun = "transaction" if count == 1 else "transactions"
    return f"{count} new {noun} – click to show"
