"""Helpers for privacy-aware metrics payloads."""


def transcript_metrics_payload(text: str, is_final: bool, include_text: bool = False) -> dict:
    """Build a transcript payload with optional transcript text."""
    payload = {
        "is_final": is_final,
        "text_chars": len(text),
    }
    if include_text:
        payload["text"] = text
    return payload


def completion_metrics_payload(
    text: str,
    elapsed_s: float,
    fallback: bool,
    prompt_chars: int,
    include_text: bool = False,
) -> dict:
    """Build a completion payload with optional reply text."""
    payload = {
        "elapsed_s": round(elapsed_s, 4),
        "fallback": fallback,
        "prompt_chars": prompt_chars,
        "text_chars": len(text),
    }
    if include_text:
        payload["text"] = text
    return payload
