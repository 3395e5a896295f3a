"""Factory returning the configured lead sink."""

from __future__ import annotations

from config.settings import Settings, get_settings
from leads.sinks import CompositeLeadSink, CsvLeadSink, DatabaseLeadSink, LeadSink


def build_lead_sink(settings: Settings | None = None) -> LeadSink:
    """Instantiate the sinks named in ``LEAD_SINKS``."""

    settings = settings or get_settings()
    sinks: list[LeadSink] = []
    for name in dict.fromkeys(settings.lead_sinks):
        if name == "csv":
            sinks.append(CsvLeadSink(settings.resolved_leads_csv_path))
        elif name == "database":
            sinks.append(DatabaseLeadSink())
        elif name == "webhook":
            from integrations.lead_webhook import WebhookLeadSink

            sinks.append(WebhookLeadSink(settings.lead_webhook_url, settings.lead_webhook_api_key))
        else:
            raise ValueError(f"Unsupported lead sink: {name}")

    if not sinks:
        raise ValueError("At least one lead sink must be configured.")
    if len(sinks) == 1:
        return sinks[0]
    return CompositeLeadSink(sinks)
