"""Storage access for the lead aggregate."""

from leadcrm.repositories.lead_repository import LeadRepository

__all__ = ["LeadRepository"]
