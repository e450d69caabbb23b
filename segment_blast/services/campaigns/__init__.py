"""
Campaigns.

Structure:
- types: CampaignConfig, DomainExclusion, RunSummary
- registry: named presets and build_config
- runner: CampaignRunner
"""
from segment_blast.services.campaigns.registry import PRESETS, build_config, list_presets
from segment_blast.services.campaigns.runner import CampaignRunner
from segment_blast.services.campaigns.types import CampaignConfig, DomainExclusion, RunSummary

__all__ = [
    "CampaignConfig",
    "CampaignRunner",
    "DomainExclusion",
    "RunSummary",
    "PRESETS",
    "build_config",
    "list_presets",
]
