"""Server-sent event framing."""


def format_sse(event: str, data: str) -> str:
    """One SSE frame. Multi-line data is split across ``data:`` lines."""
    lines = "".join(f"data: {line}\n" for line in data.split("\n"))
    return f"event: {event}\n{lines}\n"
