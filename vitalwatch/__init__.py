"""Real-time vitals classification and alerting for a hospital ward.

This package contains the domain models and the services that turn a live
heart-rate feed into per-room severity tiers and alarm lifecycles.
"""
