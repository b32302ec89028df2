"""Output formatters for run summaries."""

from orderbook.models.reporting import RunSummary


def summary_payload(summary: RunSummary) -> dict:
    """The structured result handed back to whoever triggered the run."""
    if not summary.success:
        return {
            "success": False,
            "message": summary.message,
            "error": summary.error,
            "details": summary.details,
            "source": summary.source,
            "traceId": summary.trace_id,
        }
    return {
        "success": True,
        "message": summary.message,
        "totalBuyOrders": summary.total_buy_orders,
        "totalSellOrders": summary.total_sell_orders,
        "totalEntries": summary.total_entries,
        "savedToDatabase": summary.saved_to_database,
        "closedOrders": summary.closed_orders,
        "source": summary.source,
        "traceId": summary.trace_id,
        "rateLimited": summary.rate_limited,
    }


def format_summary_text(summary: RunSummary) -> str:
    """Multi-line summary for logs."""
    status = "OK" if summary.success else "FAILED"
    lines = [
        f"=== Order book run {summary.trace_id} ({summary.source}) {status} ===",
        f"Buy: {summary.total_buy_orders} orders / {summary.buy_pages} pages",
        f"Sell: {summary.total_sell_orders} orders / {summary.sell_pages} pages",
        f"Saved: {summary.saved_to_database} | Closed: {summary.closed_orders}",
    ]
    if summary.rate_limited:
        lines.append("Rate limited: no orders fetched")
    if summary.timed_out:
        lines.append("Collection timed out, partial data used")
    for err in summary.errors:
        lines.append(f"Error: {err}")
    lines.append(f"Duration: {summary.duration_seconds:.1f}s")
    return "\n".join(lines)
