"""Plain-text rendering for digest emails."""

from urllib.parse import urlencode

from aquaguard.digests.schemas import AlertDigest

SUBJECT_PREFIX = "Alert Digest:"


def acknowledge_url(base_url: str, digest: AlertDigest) -> str:
    query = urlencode({"token": digest.ack_token})
    return f"{base_url.rstrip('/')}/digests/{digest.digest_id}/acknowledge?{query}"


def render_digest(digest: AlertDigest, base_url: str) -> tuple[str, str]:
    """Return ``(subject, body)`` for a digest email."""
    count = len(digest.items)
    noun = "alert" if count == 1 else "alerts"
    subject = f"{SUBJECT_PREFIX} {digest.label} ({count} {noun})"

    lines = [
        f"{count} {digest.label} {noun} since your last digest:",
        "",
    ]
    for item in sorted(digest.items, key=lambda i: i.timestamp, reverse=True):
        lines.append(
            f"- {item.timestamp.strftime('%Y-%m-%d %H:%M')} UTC  "
            f"{item.device_name}: {item.summary}"
        )
    lines += [
        "",
        "You will keep receiving this digest until you acknowledge it:",
        acknowledge_url(base_url, digest),
    ]
    return subject, "\n".join(lines)
