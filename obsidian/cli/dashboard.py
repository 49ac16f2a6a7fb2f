"""CLI dashboard — prints guard status and top setups to the console."""

from obsidian.signals.models import SetupRow


def _fmt_price(price) -> str:
    if price is None:
        return "—"
    if price >= 1:
        return f"${price:,.2f}"
    return f"${price:,.8f}"


def print_status(status: dict, setups: list[SetupRow] | None = None, limit: int = 10) -> str:
    """Format and print the guard status and the best-scored setups.

    Args:
        status: Dict from ``SessionGuard.status()``.
        setups: Optional rows from ``MarketScanner.setups()``.
        limit: Maximum number of setup rows to print.

    Returns:
        The formatted string (also printed to stdout).
    """
    session = status.get("session", {})
    journal = status.get("journal", {})
    commitment = status.get("commitment")
    allowed = "YES" if status.get("trading_allowed") else "NO"

    lines = [
        "──────────────── Obsidian Status ────────────────",
        f"  Day:             {status.get('day_key', 'N/A')}",
        f"  Guard:           {status.get('state', 'N/A')}",
        f"  Session:         {session.get('name', 'N/A')} ({session.get('status', 'N/A')})",
        f"  Next change in:  {session.get('countdown', 'N/A')}",
        f"  Trading allowed: {allowed}{'  [OVERRIDE]' if status.get('override') else ''}",
        f"  Message:         {status.get('message', '')}",
        f"  Trades today:    {journal.get('trades_today', 0)}",
        f"  R today:         {journal.get('cumulative_r', 0.0):+.2f}R",
        f"  Consec. losses:  {journal.get('consecutive_losses', 0)}",
    ]
    if commitment:
        lines.append(
            f"  Commitment:      max {commitment['max_trades']} trades · "
            f"-{commitment['max_daily_loss_r']}R · "
            f"{commitment['max_consecutive_losses']} losses · "
            f"{commitment['risk_pct']}% risk"
        )

    if setups:
        lines.append("──────────────── Setups ─────────────────────────")
        for row in setups[:limit]:
            lines.append(
                f"  {row.symbol:<8} {_fmt_price(row.price):>16}  "
                f"score {row.activity.combined_score:5.1f}  "
                f"{row.entry_quality:<8}  structure {row.structure.label}"
            )
    lines.append("─────────────────────────────────────────────────")

    output = "\n".join(lines)
    print(output)
    return output
