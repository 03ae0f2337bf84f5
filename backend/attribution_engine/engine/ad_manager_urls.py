"""Deep links into each ad platform's manager UI.

Meta links need the ad account id (``act_`` prefix stripped) and exist for
campaigns, ad sets and ads. Google Ads and Taboola only link campaigns.
Any other platform, or missing ids, yields None.
"""

from typing import Optional

META_CAMPAIGN_URL = (
    "https://www.facebook.com/adsmanager/manage/campaigns?act={account}"
    "&filter_set=SEARCH_BY_CAMPAIGN_GROUP_ID-STRING%1EEQUAL%1E%22{id}%22"
    "&selected_campaign_ids={id}"
)
META_AD_SET_URL = (
    "https://www.facebook.com/adsmanager/manage/adsets?act={account}"
    "&filter_set=SEARCH_BY_CAMPAIGN_ID-STRING%1EEQUAL%1E%22{id}%22"
    "&selected_adset_ids={id}"
)
META_AD_URL = (
    "https://www.facebook.com/adsmanager/manage/ads?act={account}"
    "&filter_set=SEARCH_BY_ADGROUP_IDS-STRING_SET%1EANY%1E%5B%22{id}%22%5D"
    "&selected_ad_ids={id}"
)
GOOGLE_CAMPAIGN_URL = "https://ads.google.com/aw/campaigns?campaignId={id}"
TABOOLA_CAMPAIGN_URL = "https://ads.taboola.com/campaigns?campaignId={id}"

_META_TEMPLATES = {
    "campaign": META_CAMPAIGN_URL,
    "ad_set": META_AD_SET_URL,
    "ad": META_AD_URL,
}


def clean_ad_account_id(ad_account_id: Optional[str]) -> Optional[str]:
    """Strip Meta's ``act_`` prefix."""
    if not ad_account_id:
        return None
    if ad_account_id.startswith("act_"):
        return ad_account_id[len("act_"):] or None
    return ad_account_id


def build_ad_manager_url(
    platform: str,
    entity_type: str,
    platform_id: Optional[str],
    ad_account_id: Optional[str] = None,
) -> Optional[str]:
    """Return the ad manager URL for an entity, or None when unsupported.

    Args:
        platform: Channel name (meta-ads, google-ads, taboola, ...)
        entity_type: One of campaign, ad_set, ad
        platform_id: The entity's id on the platform
        ad_account_id: Owning ad account (Meta only)
    """
    if not platform_id:
        return None

    if platform == "meta-ads":
        account = clean_ad_account_id(ad_account_id)
        template = _META_TEMPLATES.get(entity_type)
        if not account or template is None:
            return None
        return template.format(account=account, id=platform_id)

    if entity_type != "campaign":
        return None
    if platform == "google-ads":
        return GOOGLE_CAMPAIGN_URL.format(id=platform_id)
    if platform == "taboola":
        return TABOOLA_CAMPAIGN_URL.format(id=platform_id)
    return None
