"""
Teams webhook sender for sync run summaries.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .models import ResultReport, SyncStatus


def post_sync_summary(
    webhook_url: str,
    title: str,
    report: ResultReport,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Post a run summary to a Teams incoming webhook.

    Delivery problems are logged and never fail the run.
    """
    log = logger or logging.getLogger(__name__)
    summary = f"{report.synced}/{report.requested} devices synced"
    facts = [{"name": key, "value": str(value)} for key, value in report.counts().items()]
    failed_names = [o.requested_name for o in report.outcomes if o.status is not SyncStatus.SYNCED]
    if failed_names:
        facts.append({"name": "needsAttention", "value": ", ".join(failed_names[:20])})
    payload = {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "summary": summary,
        "themeColor": "0076D7" if report.all_synced else "D83B01",
        "title": title,
        "text": summary,
        "sections": [{"facts": facts}],
    }
    try:
        resp = requests.post(webhook_url, json=payload, timeout=10)
        if resp.status_code >= 400:
            log.warning("Teams webhook returned HTTP %s: %s", resp.status_code, resp.text[:200])
    except requests.RequestException as exc:
        log.warning("Failed to post Teams webhook: %s", exc)
