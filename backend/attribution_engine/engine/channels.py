"""Channel classification.

Defines which channels are paid advertising (ad spend) channels. Every other
channel is implicitly organic / non-ad-spend.
"""

AD_SPEND_CHANNELS = ("meta-ads", "google-ads", "taboola", "tiktok-ads")

# Ad spend channels we have direct API integration with (budget, status toggles)
MANAGED_AD_CHANNELS = ("meta-ads", "google-ads")


def is_ad_spend_channel(channel: str) -> bool:
    return channel.lower() in AD_SPEND_CHANNELS


def is_non_ad_spend_channel(channel: str) -> bool:
    return not is_ad_spend_channel(channel)


def is_managed_ad_channel(channel: str) -> bool:
    return channel.lower() in MANAGED_AD_CHANNELS
