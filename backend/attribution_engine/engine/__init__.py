"""
Attribution Engine Core
=======================

Pure computation over already-fetched row sets. Nothing in this package
touches a database or the network; the collaborators in
`attribution_engine.services` fetch rows and hand them over.

Modules:
- attribution_models.py: Attribution model registry (selection + weighting)
- time_buckets.py: Hourly/daily bucket selection and inclusive end dates
- formulas.py: Derived metric formulas with divide-by-zero guards
- metric_rows.py: MetricRow accumulator and the spend/attribution join
- hierarchy.py: Campaign -> ad set -> ad tree folding
- ad_manager_urls.py: Platform deep links
- channel_aggregator.py: Flat channel / non-paid campaign views
- cohorts.py: Cohort retention, LTV, CAC and payback
- channels.py: Ad-spend channel configuration
- dashboard.py: Shop-level totals, profit and new-customer CAC per bucket
"""
