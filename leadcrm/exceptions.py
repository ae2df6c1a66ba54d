"""Domain errors raised by services and mapped to HTTP status codes by the API."""

from typing import Optional


class DuplicateLeadError(ValueError):
    """A new lead collides with an existing fingerprint."""

    def __init__(self, signal: str, existing_lead_id: Optional[str] = None):
        self.signal = signal
        self.existing_lead_id = existing_lead_id
        super().__init__(f"Lead already exists (duplicate {signal.replace('_', ' + ')}).")


class LeadNotFoundError(LookupError):
    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


class CampaignNotFoundError(LookupError):
    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign {campaign_id} not found")


class AiClientError(RuntimeError):
    """The AI provider failed or returned something unusable."""
